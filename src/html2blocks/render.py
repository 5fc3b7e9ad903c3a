"""Markdown and JSON exporters for built document models."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .core import LOG, BlockKind, DocumentModel, RenderableBlock


def slugify_filename(name: str) -> str:
    name = name.strip().replace(" ", "_")
    name = re.sub(r"[^A-Za-z0-9._-]+", "_", name)
    return name or "document"


def safe_write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8", newline="\n")


def _strip_list_marker(block: RenderableBlock) -> str:
    prefix = f"{block.list_marker} "
    if block.list_marker and block.markup.startswith(prefix):
        return block.markup[len(prefix) :]
    return block.markup


def block_plain_text(block: RenderableBlock) -> str:
    try:
        from bs4 import BeautifulSoup  # type: ignore
    except Exception as exc:
        raise RuntimeError(f"beautifulsoup4 not available: {exc}") from exc

    if not block.markup:
        return ""
    soup = BeautifulSoup(_strip_list_marker(block), "html.parser")
    return soup.get_text(" ", strip=True)


def _inline_markdown(markup: str) -> str:
    try:
        from markdownify import markdownify as md_convert  # type: ignore
    except Exception as exc:
        raise RuntimeError(f"markdownify not available: {exc}") from exc

    return md_convert(markup).strip()


def block_to_markdown(block: RenderableBlock) -> str:
    if block.kind is BlockKind.DIVIDER:
        return "---"
    if block.kind is BlockKind.IMAGE:
        return f"![]({block.image_src})"

    text = _inline_markdown(_strip_list_marker(block))
    if block.kind is BlockKind.HEADING:
        return f"{'#' * (block.level or 1)} {text}"
    if block.kind is BlockKind.LIST_ITEM:
        if block.list_ordinal:
            return f"{block.list_ordinal}. {text}"
        return f"- {text}"
    return text


def _list_kind(block: RenderableBlock) -> Optional[str]:
    if block.kind is not BlockKind.LIST_ITEM:
        return None
    return "ol" if block.list_ordinal else "ul"


def _anchor_markdown(block: RenderableBlock, line: str) -> str:
    anchor = f'<a id="{block.anchor_id}"></a>'
    if block.kind is BlockKind.LIST_ITEM:
        # kept inside the item so a standalone HTML line does not split the list
        marker, _, text = line.partition(" ")
        return f"{marker} {anchor}{text}"
    return f"{anchor}\n{line}"


def model_to_markdown(model: DocumentModel) -> str:
    out: List[str] = []
    previous_kind: Optional[str] = None
    for block in model.blocks:
        if block.kind is BlockKind.PARAGRAPH and not block.markup:
            continue
        line = block_to_markdown(block)
        if block.anchor_id:
            line = _anchor_markdown(block, line)
        kind = _list_kind(block)
        if out:
            # consecutive list items of one kind stay in one Markdown list
            out.append("\n" if kind is not None and kind == previous_kind else "\n\n")
        out.append(line)
        previous_kind = kind
    return "".join(out).strip() + "\n"


def block_to_dict(block: RenderableBlock) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "order": block.order,
        "source_offset": block.source_offset,
        "kind": block.kind.value,
        "tag": block.tag,
        "markup": block.markup,
    }
    optional = {
        "level": block.level,
        "font_size": block.font_size,
        "color": block.color,
        "anchor_id": block.anchor_id,
        "link_target_id": block.link_target_id,
        "list_marker": block.list_marker,
        "list_ordinal": block.list_ordinal,
        "image_src": block.image_src,
        "image_width": block.image_width,
        "image_height": block.image_height,
    }
    data.update({key: value for key, value in optional.items() if value is not None})
    return data


def build_toc(model: DocumentModel) -> List[Dict[str, Any]]:
    return [
        {
            "title": block_plain_text(block),
            "level": block.level,
            "order": block.order,
            "anchor": block.anchor_id,
        }
        for block in model.headings()
    ]


def model_to_manifest(model: DocumentModel) -> Dict[str, Any]:
    return {
        "blocks": [block_to_dict(block) for block in model.blocks],
        "anchors": dict(model.anchors),
        "toc": build_toc(model),
        "styles": {
            "tag_colors": dict(model.context.tag_colors),
            "class_colors": dict(model.context.class_colors),
        },
        "warnings": list(model.warnings),
    }


def write_outputs(model: DocumentModel, out_dir: Path, stem: str, formats: Iterable[str]) -> List[Path]:
    base = slugify_filename(stem)
    written: List[Path] = []
    for fmt in formats:
        if fmt == "json":
            target = out_dir / f"{base}.json"
            safe_write_text(target, json.dumps(model_to_manifest(model), ensure_ascii=False, indent=2) + "\n")
        elif fmt == "markdown":
            target = out_dir / f"{base}.md"
            safe_write_text(target, model_to_markdown(model))
        else:
            raise ValueError(f"Unsupported output format: {fmt}")
        LOG.info("Wrote %s", target)
        written.append(target)
    return written
