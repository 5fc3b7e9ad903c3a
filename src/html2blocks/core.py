"""Core pipeline for html2blocks."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

LOG = logging.getLogger("html2blocks")

DEFAULT_SPAN_ITERATION_LIMIT = 5
DEFAULT_MAX_IMAGE_WIDTH = 600
DEFAULT_IMAGE_HEIGHT = 200
DEFAULT_LINK_COLOR = "#1155cc"
DEFAULT_FONT_SIZE = 14
BLOCKED_DRAWING_PREFIX = "https://docs.google.com/drawings/"

BULLET_MARKER = "•"

ENTITY_TABLE: Tuple[Tuple[str, str], ...] = (
    ("&nbsp;", " "),
    ("&lsquo;", "‘"),
    ("&lspquo;", "‘"),
    ("&rsquo;", "’"),
    ("&ldquo;", "“"),
    ("&rdquo;", "”"),
    ("&hellip;", "…"),
)

HEADING_SIZES = {1: 28, 2: 24, 3: 20, 4: 18, 5: 16, 6: 14}
INLINE_ALLOWED_TAGS = frozenset({"font", "b", "i", "u", "br", "a"})
LIST_CONTAINER_TAGS = frozenset({"ul", "ol"})
SCAN_EXCLUDED_TAGS = frozenset({"img", "script", "style"})


class DocumentError(RuntimeError):
    """Base class for fatal pipeline failures."""


class EmptyDocumentIdError(DocumentError):
    pass


class StructureError(DocumentError):
    pass


class EmptyDocumentError(DocumentError):
    pass


class FetchError(DocumentError):
    pass


class BlockKind(str, Enum):
    HEADING = "heading"
    PARAGRAPH = "paragraph"
    LIST_ITEM = "list_item"
    IMAGE = "image"
    DIVIDER = "divider"


@dataclass(frozen=True)
class BuildConfig:
    span_iteration_limit: int = DEFAULT_SPAN_ITERATION_LIMIT
    max_image_width: int = DEFAULT_MAX_IMAGE_WIDTH
    default_image_height: int = DEFAULT_IMAGE_HEIGHT
    link_color: str = DEFAULT_LINK_COLOR
    blocked_image_prefixes: Tuple[str, ...] = (BLOCKED_DRAWING_PREFIX,)
    verbose: bool = False


@dataclass(frozen=True)
class RawElement:
    tag: str
    attributes: str
    content: str
    source_offset: int
    src: Optional[str] = None


@dataclass(frozen=True)
class ParseContext:
    tag_colors: Mapping[str, str]
    class_colors: Mapping[str, str]
    config: BuildConfig = field(default_factory=BuildConfig)


@dataclass(frozen=True)
class RenderableBlock:
    kind: BlockKind
    markup: str
    order: int
    source_offset: int
    tag: str
    level: Optional[int] = None
    font_size: Optional[int] = None
    color: Optional[str] = None
    anchor_id: Optional[str] = None
    link_target_id: Optional[str] = None
    list_marker: Optional[str] = None
    list_ordinal: Optional[int] = None
    image_src: Optional[str] = None
    image_width: Optional[int] = None
    image_height: Optional[int] = None


@dataclass(frozen=True)
class DocumentModel:
    blocks: Tuple[RenderableBlock, ...]
    anchors: Mapping[str, int]
    context: ParseContext
    warnings: Tuple[str, ...] = ()

    def resolve_anchor(self, anchor_id: str) -> Optional[RenderableBlock]:
        order = self.anchors.get(anchor_id)
        if order is None:
            return None
        return self.blocks[order]

    def headings(self) -> List[RenderableBlock]:
        return [block for block in self.blocks if block.kind is BlockKind.HEADING]


def _resolve_log_level(verbose: bool, debug: bool) -> int:
    return logging.DEBUG if debug else (logging.INFO if verbose else logging.WARNING)


def _configure_html2blocks_logger(level: int) -> None:
    LOG.setLevel(level)
    LOG.propagate = False
    if not LOG.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        handler.setLevel(level)
        LOG.addHandler(handler)
    else:
        for handler in LOG.handlers:
            handler.setLevel(level)
            if handler.formatter is None:
                handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))


def setup_logging(verbose: bool, debug: bool) -> None:
    level = _resolve_log_level(verbose, debug)
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
    _configure_html2blocks_logger(level)


def _progress_bar_line(current: int, total: int, width: int = 24) -> str:
    if total <= 0:
        return "[?]"
    clamped = max(0, min(current, total))
    filled = int((clamped / total) * width)
    filled = min(filled, width)
    return "[" + "#" * filled + "." * (width - filled) + "]"


def _log_verbose_progress(prefix: str, current: int, total: int, detail: Optional[str] = None) -> None:
    bar = _progress_bar_line(current, total)
    counter = f"[{current}/{total}]" if total > 0 else f"[{current}]"
    if total > 0:
        msg = f"{prefix} {bar} {counter} ({(current / total) * 100.0:.1f}%)"
    else:
        msg = f"{prefix} {bar} {counter}"
    if detail:
        msg = f"{msg} | {detail}"
    LOG.info(msg)


def normalize_entities(text: str) -> str:
    for entity, replacement in ENTITY_TABLE:
        text = text.replace(entity, replacement)
    return text


STYLE_BLOCK_RE = re.compile(r"<style\b[^>]*>(.*?)</style\s*>", re.IGNORECASE | re.DOTALL)
CSS_RULE_RE = re.compile(r"([^{}]+)\{([^{}]*)\}")
CSS_COLOR_RE = re.compile(r"(?<![-\w])color\s*:\s*(#[0-9a-fA-F]{3,8})\b")
CSS_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
CSS_AT_STATEMENT_RE = re.compile(r"@[^{};]*;")


def resolve_stylesheet(raw_html: str) -> Tuple[Dict[str, str], Dict[str, str]]:
    """Collect ``color`` rules from every ``<style>`` block.

    Returns ``(tag_colors, class_colors)``. Class selectors are keyed without
    their leading dot; all keys are lowercased and the last rule for a key wins.
    """
    tag_colors: Dict[str, str] = {}
    class_colors: Dict[str, str] = {}

    for style_match in STYLE_BLOCK_RE.finditer(raw_html):
        css = CSS_COMMENT_RE.sub("", style_match.group(1))
        css = CSS_AT_STATEMENT_RE.sub("", css)
        for rule in CSS_RULE_RE.finditer(css):
            color_match = CSS_COLOR_RE.search(rule.group(2))
            if color_match is None:
                continue
            color = color_match.group(1).lower()
            for selector in rule.group(1).split(","):
                selector = selector.strip().lower()
                if not selector:
                    continue
                if selector.startswith("."):
                    class_colors[selector[1:]] = color
                else:
                    tag_colors[selector] = color

    LOG.debug("Stylesheet colors: %d tag rule(s), %d class rule(s)", len(tag_colors), len(class_colors))
    return tag_colors, class_colors


def build_parse_context(raw_html: str, config: Optional[BuildConfig] = None) -> ParseContext:
    tag_colors, class_colors = resolve_stylesheet(raw_html)
    return ParseContext(
        tag_colors=MappingProxyType(tag_colors),
        class_colors=MappingProxyType(class_colors),
        config=config or BuildConfig(),
    )


BODY_RE = re.compile(r"<body\b[^>]*>(.*?)</body\s*>", re.IGNORECASE | re.DOTALL)


def extract_body(raw_html: str) -> str:
    match = BODY_RE.search(raw_html)
    if match is None:
        raise StructureError("Document has no <body> region")
    return match.group(1)


BLOCK_ELEMENT_RE = re.compile(
    r"<(?P<tag>[A-Za-z][A-Za-z0-9]*)(?P<attrs>(?:\s[^>]*)?)>(?P<content>.*?)</(?P=tag)\s*>",
    re.IGNORECASE | re.DOTALL,
)
IMG_ELEMENT_RE = re.compile(r"<img\b(?P<attrs>[^>]*?)/?\s*>", re.IGNORECASE)
HR_ELEMENT_RE = re.compile(r"<hr\s*/?\s*>", re.IGNORECASE)
ATTRIBUTE_RE = re.compile(
    r"(?P<name>[^\s\"'>/=]+)"
    r"(?:\s*=\s*(?:\"(?P<dq>[^\"]*)\"|'(?P<sq>[^']*)'|(?P<bare>[^\s\"'>]+)))?"
)


def parse_attributes(attributes: str) -> Dict[str, str]:
    """Split an opening tag's attribute text into a ``{name: value}`` dict.

    Names are lowercased and the first occurrence of a name wins. Quoted values
    are consumed whole, so ``width=`` inside a URL is never read as an attribute.
    """
    parsed: Dict[str, str] = {}
    for match in ATTRIBUTE_RE.finditer(attributes):
        name = match.group("name").lower()
        if name in parsed:
            continue
        value = next((group for group in match.group("dq", "sq", "bare") if group is not None), "")
        parsed[name] = value
    return parsed


def scan_block_elements(body: str) -> List[RawElement]:
    elements: List[RawElement] = []
    pos = 0
    while True:
        match = BLOCK_ELEMENT_RE.search(body, pos)
        if match is None:
            break
        tag = match.group("tag").lower()
        if tag in SCAN_EXCLUDED_TAGS:
            pos = match.end()
            continue
        elements.append(
            RawElement(
                tag=tag,
                attributes=match.group("attrs").strip(),
                content=match.group("content"),
                source_offset=match.start(),
            )
        )
        # li children of a list container are scanned as their own elements
        pos = match.start("content") if tag in LIST_CONTAINER_TAGS else match.end()
    return elements


def scan_image_elements(body: str) -> List[RawElement]:
    elements: List[RawElement] = []
    for match in IMG_ELEMENT_RE.finditer(body):
        attrs = match.group("attrs").strip()
        elements.append(
            RawElement(
                tag="img",
                attributes=attrs,
                content="",
                source_offset=match.start(),
                src=parse_attributes(attrs).get("src", ""),
            )
        )
    return elements


def scan_divider_elements(body: str) -> List[RawElement]:
    return [
        RawElement(tag="hr", attributes="", content="", source_offset=match.start())
        for match in HR_ELEMENT_RE.finditer(body)
    ]


def scan_elements(body: str) -> List[RawElement]:
    blocks = scan_block_elements(body)
    images = scan_image_elements(body)
    dividers = scan_divider_elements(body)
    LOG.debug(
        "Scanned %d block(s), %d image(s), %d divider(s)", len(blocks), len(images), len(dividers)
    )
    return sorted(blocks + images + dividers, key=lambda element: element.source_offset)


SPAN_CLASS_RE = re.compile(
    r"<span\b[^>]*?(?<![-\w])class\s*=\s*(?P<quote>[\"'])(?P<classes>[^\"'>]*)(?P=quote)[^>]*>(?P<inner>.*?)</span\s*>",
    re.IGNORECASE | re.DOTALL,
)
INLINE_TAG_RE = re.compile(r"<\s*/?\s*(?P<name>[A-Za-z][A-Za-z0-9]*)\b[^>]*>")
FONT_TAG_RE = re.compile(r"<\s*/?\s*font\b[^>]*>", re.IGNORECASE)
WHITESPACE_RE = re.compile(r"\s+")


def first_class_color(classes: Iterable[str], class_colors: Mapping[str, str]) -> Optional[str]:
    for name in classes:
        color = class_colors.get(name.lower())
        if color is not None:
            return color
    return None


def apply_class_colors(
    text: str,
    class_colors: Mapping[str, str],
    max_iterations: int = DEFAULT_SPAN_ITERATION_LIMIT,
) -> str:
    """Rewrite class-bearing spans into ``<font color>`` tags.

    Each pass rewrites every span the pattern can see; nested spans only
    surface once their outer span is gone, so passes repeat until one makes no
    change or ``max_iterations`` is reached. Spans still present after the last
    pass are left untouched.
    """

    def _rewrite(match: re.Match) -> str:
        inner = match.group("inner")
        color = first_class_color(match.group("classes").split(), class_colors)
        if color is None:
            return inner
        return f'<font color="{color}">{inner}</font>'

    for iteration in range(max_iterations):
        text, count = SPAN_CLASS_RE.subn(_rewrite, text)
        if count == 0:
            break
        LOG.debug("Span pass %d rewrote %d span(s)", iteration + 1, count)
    return text


def filter_inline_tags(text: str) -> str:
    def _keep_allowed(match: re.Match) -> str:
        return match.group(0) if match.group("name").lower() in INLINE_ALLOWED_TAGS else ""

    text = INLINE_TAG_RE.sub(_keep_allowed, text)
    return WHITESPACE_RE.sub(" ", text).strip()


NUMBER_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)")


def _list_start(attributes: str) -> int:
    match = NUMBER_RE.match(parse_attributes(attributes).get("start", ""))
    return int(float(match.group(1))) if match else 1


def resolve_list_context(index: int, elements: Sequence[RawElement]) -> Tuple[str, int]:
    """Return ``(marker, ordinal)`` for the list item at ``index``.

    Only elements before ``index`` are inspected. ``ordinal`` is 0 for bullets.
    """
    siblings = 0
    for position in range(index - 1, -1, -1):
        tag = elements[position].tag
        if tag == "ul":
            return BULLET_MARKER, 0
        if tag == "ol":
            ordinal = _list_start(elements[position].attributes) + siblings
            return f"{ordinal}.", ordinal
        if tag == "li":
            siblings += 1
    return BULLET_MARKER, 0


STYLE_WIDTH_RE = re.compile(r"(?<![-\w])width\s*:\s*(\d+(?:\.\d+)?)px", re.IGNORECASE)
STYLE_HEIGHT_RE = re.compile(r"(?<![-\w])height\s*:\s*(\d+(?:\.\d+)?)px", re.IGNORECASE)
LOCAL_LINK_RE = re.compile(r"<a\b[^>]*?(?<![-\w])href\s*=\s*[\"']#([^\"']+)[\"']", re.IGNORECASE)
HEADING_TAG_RE = re.compile(r"^h([1-6])$")


def attribute_classes(attributes: str) -> List[str]:
    return parse_attributes(attributes).get("class", "").split()


def attribute_id(attributes: str) -> Optional[str]:
    return parse_attributes(attributes).get("id", "").strip() or None


def _image_dimension(attributes: Mapping[str, str], name: str, style_re: re.Pattern) -> Optional[int]:
    match = NUMBER_RE.match(attributes.get(name, ""))
    if match is None:
        match = style_re.search(attributes.get("style", ""))
    if match is None:
        return None
    return int(round(float(match.group(1))))


def image_size(attributes: str, config: BuildConfig) -> Tuple[int, int]:
    parsed = parse_attributes(attributes)
    width = _image_dimension(parsed, "width", STYLE_WIDTH_RE)
    height = _image_dimension(parsed, "height", STYLE_HEIGHT_RE)
    width = config.max_image_width if width is None else min(width, config.max_image_width)
    return width, height or config.default_image_height


def resolve_block_color(element: RawElement, context: ParseContext) -> Optional[str]:
    class_color = first_class_color(attribute_classes(element.attributes), context.class_colors)
    if class_color is not None:
        return class_color
    return context.tag_colors.get(element.tag)


def is_blocked_image(element: RawElement, config: BuildConfig) -> bool:
    src = element.src or ""
    return any(src.startswith(prefix) for prefix in config.blocked_image_prefixes)


def render_inline_markup(content: str, context: ParseContext) -> str:
    text = normalize_entities(content)
    text = apply_class_colors(text, context.class_colors, context.config.span_iteration_limit)
    return filter_inline_tags(text)


def build_block(
    element: RawElement,
    *,
    index: int,
    order: int,
    elements: Sequence[RawElement],
    context: ParseContext,
) -> RenderableBlock:
    config = context.config
    anchor_id = attribute_id(element.attributes)

    if element.tag == "hr":
        return RenderableBlock(
            kind=BlockKind.DIVIDER,
            markup="",
            order=order,
            source_offset=element.source_offset,
            tag=element.tag,
            anchor_id=anchor_id,
        )

    if element.tag == "img":
        width, height = image_size(element.attributes, config)
        return RenderableBlock(
            kind=BlockKind.IMAGE,
            markup="",
            order=order,
            source_offset=element.source_offset,
            tag=element.tag,
            anchor_id=anchor_id,
            image_src=element.src or "",
            image_width=width,
            image_height=height,
        )

    markup = "" if element.tag in LIST_CONTAINER_TAGS else render_inline_markup(element.content, context)
    color = resolve_block_color(element, context)

    link_match = LOCAL_LINK_RE.search(markup)
    link_target_id = link_match.group(1) if link_match else None
    if link_target_id is not None:
        color = config.link_color
        markup = f"<u>{FONT_TAG_RE.sub('', markup)}</u>"

    kind = BlockKind.PARAGRAPH
    level: Optional[int] = None
    font_size = DEFAULT_FONT_SIZE
    list_marker: Optional[str] = None
    list_ordinal: Optional[int] = None

    heading = HEADING_TAG_RE.match(element.tag)
    if heading is not None:
        kind = BlockKind.HEADING
        level = int(heading.group(1))
        font_size = HEADING_SIZES[level]
    elif element.tag == "li":
        kind = BlockKind.LIST_ITEM
        list_marker, list_ordinal = resolve_list_context(index, elements)
        markup = f"{list_marker} {markup}"

    return RenderableBlock(
        kind=kind,
        markup=markup,
        order=order,
        source_offset=element.source_offset,
        tag=element.tag,
        level=level,
        font_size=font_size,
        color=color,
        anchor_id=anchor_id,
        link_target_id=link_target_id,
        list_marker=list_marker,
        list_ordinal=list_ordinal,
    )


def build_document_model(raw_html: str, config: Optional[BuildConfig] = None) -> DocumentModel:
    context = build_parse_context(raw_html, config)
    body = extract_body(raw_html)
    elements = scan_elements(body)
    if not elements:
        raise EmptyDocumentError("No renderable elements found in <body>")

    blocks: List[RenderableBlock] = []
    anchors: Dict[str, int] = {}
    warnings: List[str] = []
    total = len(elements)

    for index, element in enumerate(elements):
        if element.tag == "img" and is_blocked_image(element, context.config):
            message = f"Skipping unrenderable drawing image: {element.src}"
            LOG.warning(message)
            warnings.append(message)
            continue

        block = build_block(element, index=index, order=len(blocks), elements=elements, context=context)
        blocks.append(block)
        if block.anchor_id is not None:
            if block.anchor_id in anchors:
                LOG.debug("Anchor id %r re-registered at block %d", block.anchor_id, block.order)
            anchors[block.anchor_id] = block.order

        if context.config.verbose:
            _log_verbose_progress("Building blocks", index + 1, total, f"{element.tag}@{element.source_offset}")

    LOG.info("Built %d block(s) from %d element(s)", len(blocks), total)
    return DocumentModel(
        blocks=tuple(blocks),
        anchors=MappingProxyType(anchors),
        context=context,
        warnings=tuple(warnings),
    )
