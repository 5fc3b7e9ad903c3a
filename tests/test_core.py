import logging
from pathlib import Path

import pytest

import html2blocks.core as core
from html2blocks.core import BlockKind, BuildConfig


def _doc(body: str, css: str = "") -> str:
    style = f"<style type=\"text/css\">{css}</style>" if css else ""
    return f"<html><head>{style}</head><body>{body}</body></html>"


def _sample_html() -> str:
    path = Path(__file__).resolve().parents[1] / "html_sample" / "document.html"
    return path.read_text(encoding="utf-8")


def test_normalize_entities_replaces_known_entities_only():
    assert core.normalize_entities("&ldquo;Hi&rdquo; &amp;nbsp;") == "“Hi” &amp;nbsp;"
    assert core.normalize_entities("&lspquo;a&rsquo; &lsquo;b&rsquo;") == "‘a’ ‘b’"
    assert core.normalize_entities("wait&hellip;&nbsp;&copy;") == "wait… &copy;"


def test_resolve_stylesheet_splits_tag_and_class_rules():
    raw = _doc(
        "<p>x</p>",
        css=(
            "p{margin:0;color:#111111}"
            ".C1{font-weight:700;color:#FF0000}"
            ".c2{background-color:#ffffff}"
            "h1, .c3 { color: #00aa00 }"
            "/* .c4{color:#123456} */"
        ),
    )

    tag_colors, class_colors = core.resolve_stylesheet(raw)

    assert tag_colors == {"p": "#111111", "h1": "#00aa00"}
    assert class_colors == {"c1": "#ff0000", "c3": "#00aa00"}


def test_resolve_stylesheet_last_rule_wins_across_blocks():
    raw = "<style>.a{color:#111111}</style><style>.a{color:#222222}</style><body><p>x</p></body>"

    _, class_colors = core.resolve_stylesheet(raw)

    assert class_colors == {"a": "#222222"}


def test_resolve_stylesheet_without_style_returns_empty_maps():
    assert core.resolve_stylesheet("<body><p>x</p></body>") == ({}, {})


def test_resolve_stylesheet_ignores_at_statements_before_rules():
    raw = _doc(
        "<p>x</p>",
        css="@import url('https://themes.example.com/a.css');@charset \"utf-8\";.c0{color:#ff0000}",
    )

    _, class_colors = core.resolve_stylesheet(raw)

    assert class_colors == {"c0": "#ff0000"}


def test_parse_context_maps_are_read_only():
    context = core.build_parse_context(_doc("<p>x</p>", css=".a{color:#111111}"))

    with pytest.raises(TypeError):
        context.class_colors["a"] = "#000000"  # type: ignore[index]
    with pytest.raises(TypeError):
        context.tag_colors["p"] = "#000000"  # type: ignore[index]


def test_extract_body_returns_inner_markup():
    assert core.extract_body('<html><BODY class="x"><p>a</p></BODY></html>') == "<p>a</p>"


def test_missing_body_raises_structure_error():
    with pytest.raises(core.StructureError):
        core.extract_body("<html><p>no body</p></html>")
    with pytest.raises(core.StructureError):
        core.build_document_model("<html><p>no body</p></html>")


def test_empty_body_raises_empty_document_error():
    with pytest.raises(core.EmptyDocumentError):
        core.build_document_model("<html><body>   just text   </body></html>")


def test_fatal_errors_are_runtime_errors():
    assert issubclass(core.StructureError, RuntimeError)
    assert issubclass(core.EmptyDocumentError, core.DocumentError)
    assert issubclass(core.EmptyDocumentIdError, core.DocumentError)


def test_scan_elements_merges_scans_in_source_order():
    body = '<h1>T</h1><img src="a.png"/><p>x</p><hr /><IMG SRC="b.png"><hr>'

    elements = core.scan_elements(body)

    assert [e.tag for e in elements] == ["h1", "img", "p", "hr", "img", "hr"]
    offsets = [e.source_offset for e in elements]
    assert offsets == sorted(offsets)
    assert elements[1].src == "a.png"
    assert elements[4].src == "b.png"


def test_scan_image_without_src_defaults_to_empty_string():
    (element,) = core.scan_image_elements('<img alt="x">')

    assert element.src == ""
    assert element.content == ""


def test_scan_list_containers_expose_their_items():
    elements = core.scan_block_elements('<ul class="c"><li>a</li><li>b</li></ul><p>after</p>')

    assert [e.tag for e in elements] == ["ul", "li", "li", "p"]
    assert elements[0].attributes == 'class="c"'
    assert elements[1].content == "a"


def test_scan_same_tag_nesting_matches_nearest_close():
    elements = core.scan_block_elements("<div>a<div>b</div>c</div>")

    assert len(elements) == 1
    assert elements[0].content == "a<div>b"


def test_scan_skips_script_and_style_blocks():
    elements = core.scan_block_elements("<script>var x = 1;</script><p>x</p>")

    assert [e.tag for e in elements] == ["p"]


def test_apply_class_colors_rewrites_known_class():
    text = '<span class="c9 c2">hi</span> there'

    result = core.apply_class_colors(text, {"c2": "#ff0000", "c9": "#00ff00"})

    assert result == '<font color="#00ff00">hi</font> there'

def test_apply_class_colors_accepts_single_quoted_class():
    text = core.apply_class_colors("<span class='c1'>red</span>", {"c1": "#ff0000"})

    assert text == '<font color="#ff0000">red</font>'


def test_parse_attributes_reads_quoted_and_bare_values():
    attrs = core.parse_attributes("SRC=\"a.png?width=50\" alt='x y' width=120 hidden data-width=\"9\" width=\"7\"")

    assert attrs == {"src": "a.png?width=50", "alt": "x y", "width": "120", "hidden": "", "data-width": "9"}



def test_apply_class_colors_strips_unknown_span():
    assert core.apply_class_colors('<span class="zz">hi</span>', {"c2": "#ff0000"}) == "hi"


def test_apply_class_colors_resolves_two_nested_levels():
    text = '<span class="a">x <span class="b">y</span> z</span>'
    colors = {"a": "#aa0000", "b": "#00bb00"}

    result = core.apply_class_colors(text, colors, max_iterations=5)

    assert result == '<font color="#aa0000">x <font color="#00bb00">y</font> z</font>'
    assert "<span" not in result


def test_apply_class_colors_stops_at_iteration_ceiling():
    text = '<span class="a">x <span class="b">y</span> z</span>'

    result = core.apply_class_colors(text, {"a": "#aa0000", "b": "#00bb00"}, max_iterations=1)

    assert result == '<font color="#aa0000">x <span class="b">y</font> z</span>'


def test_filter_inline_tags_keeps_allow_list_and_collapses_whitespace():
    text = '  <div><B>bold</B>\n\n<i>it</i> <span style="x">plain</span><br/><a href="#x">go</a> <table>t</table>  '

    assert core.filter_inline_tags(text) == '<B>bold</B> <i>it</i> plain<br/><a href="#x">go</a> t'


def test_resolve_list_context_bullet_and_ordinal():
    elements = core.scan_elements('<ol><li>a</li><li>b</li><li>c</li></ol><ul><li>d</li></ul>')

    assert core.resolve_list_context(1, elements) == ("1.", 1)
    assert core.resolve_list_context(3, elements) == ("3.", 3)
    assert core.resolve_list_context(5, elements) == ("•", 0)


def test_resolve_list_context_honors_start_attribute():
    elements = core.scan_elements('<ol start="4"><li>a</li><li>b</li></ol>')

    assert core.resolve_list_context(2, elements) == ("5.", 5)


def test_resolve_list_context_defaults_to_bullet_and_never_looks_ahead():
    elements = core.scan_elements("<li>orphan</li><ol><li>a</li></ol>")

    assert core.resolve_list_context(0, elements) == ("•", 0)


def test_class_color_overrides_tag_color():
    raw = _doc('<p class="x">styled</p><p>plain</p>', css="p{color:#111111} .x{color:#ff0000}")

    model = core.build_document_model(raw)

    assert model.blocks[0].color == "#ff0000"
    assert model.blocks[1].color == "#111111"


def test_first_matching_class_wins():
    raw = _doc('<p class="none b a">x</p>', css=".a{color:#aaaaaa} .b{color:#bbbbbb}")

    model = core.build_document_model(raw)

    assert model.blocks[0].color == "#bbbbbb"


def test_blocked_drawing_image_is_dropped_with_warning(monkeypatch, caplog):
    monkeypatch.setattr(core.LOG, "propagate", True)
    raw = _doc('<p>before</p><img src="https://docs.google.com/drawings/d/abc/image"><p>after</p>')

    with caplog.at_level(logging.WARNING, logger="html2blocks"):
        model = core.build_document_model(raw)

    assert [b.kind for b in model.blocks] == [BlockKind.PARAGRAPH, BlockKind.PARAGRAPH]
    assert all(b.kind is not BlockKind.IMAGE for b in model.blocks)
    assert len(model.warnings) == 1
    assert "docs.google.com/drawings" in model.warnings[0]
    assert any("drawing" in record.getMessage() for record in caplog.records)


def test_anchor_round_trip():
    raw = _doc('<p id="sec1">Target</p><p><a href="#sec1">Jump</a></p>')

    model = core.build_document_model(raw)

    assert model.blocks[1].link_target_id == "sec1"
    assert model.anchors["sec1"] == 0
    assert model.resolve_anchor("sec1") is model.blocks[0]
    assert model.resolve_anchor("missing") is None


def test_link_forces_link_color_and_underline():
    raw = _doc(
        '<p class="c1"><span class="c1"><a href="#top">Up</a></span></p>',
        css=".c1{color:#ff0000}",
    )

    model = core.build_document_model(raw, BuildConfig(link_color="#0000ee"))
    block = model.blocks[0]

    assert block.color == "#0000ee"
    assert block.markup == '<u><a href="#top">Up</a></u>'


def test_external_link_is_not_a_link_target():
    model = core.build_document_model(_doc('<p><a href="https://example.com">x</a></p>'))

    assert model.blocks[0].link_target_id is None


def test_duplicate_anchor_id_last_registration_wins():
    model = core.build_document_model(_doc('<p id="dup">one</p><p id="dup">two</p>'))

    assert model.anchors["dup"] == 1
    assert model.resolve_anchor("dup").markup == "two"


def test_lone_divider_yields_single_divider_block():
    model = core.build_document_model(_doc("<hr/>"))

    assert len(model.blocks) == 1
    assert model.blocks[0].kind is BlockKind.DIVIDER
    assert model.blocks[0].markup == ""


def test_headings_use_size_table():
    model = core.build_document_model(_doc("<h1>A</h1><h3>B</h3><h6>C</h6><p>D</p>"))

    assert [(b.kind, b.level, b.font_size) for b in model.blocks] == [
        (BlockKind.HEADING, 1, 28),
        (BlockKind.HEADING, 3, 20),
        (BlockKind.HEADING, 6, 14),
        (BlockKind.PARAGRAPH, None, core.DEFAULT_FONT_SIZE),
    ]
    assert [b.markup for b in model.headings()] == ["A", "B", "C"]


def test_images_are_clamped_and_defaulted():
    raw = _doc(
        '<img src="wide.png" style="width: 800.00px; height: 400.00px;">'
        '<img src="small.png" width="120">'
        '<img src="bare.png">'
    )

    model = core.build_document_model(raw, BuildConfig(max_image_width=600, default_image_height=200))

    assert [(b.image_src, b.image_width, b.image_height) for b in model.blocks] == [
        ("wide.png", 600, 400),
        ("small.png", 120, 200),
        ("bare.png", 600, 200),
    ]


def test_image_size_ignores_attribute_names_inside_other_values():
    raw = _doc(
        '<img src="https://example.com/pic.png?width=50&height=10">'
        '<img alt="style=&quot;width: 20px&quot;" src="b.png" data-height="90">'
    )

    model = core.build_document_model(raw, BuildConfig(max_image_width=600, default_image_height=200))

    assert [(b.image_src, b.image_width, b.image_height) for b in model.blocks] == [
        ("https://example.com/pic.png?width=50&height=10", 600, 200),
        ("b.png", 600, 200),
    ]


def test_anchor_and_class_attributes_ignore_lookalikes_in_values():
    raw = _doc('<p title="id=fake class=c1" class="c2">x</p>', css=".c1{color:#ff0000}.c2{color:#00ff00}")

    block = core.build_document_model(raw).blocks[0]

    assert block.anchor_id is None
    assert block.color == "#00ff00"


def test_list_items_are_prefixed_and_containers_are_empty():
    model = core.build_document_model(_doc("<ol><li>one</li><li>two</li></ol><ul><li>dot</li></ul>"))

    kinds = [b.kind for b in model.blocks]
    assert kinds == [
        BlockKind.PARAGRAPH,
        BlockKind.LIST_ITEM,
        BlockKind.LIST_ITEM,
        BlockKind.PARAGRAPH,
        BlockKind.LIST_ITEM,
    ]
    assert model.blocks[0].markup == ""
    assert [b.markup for b in model.blocks if b.kind is BlockKind.LIST_ITEM] == ["1. one", "2. two", "• dot"]
    assert model.blocks[4].list_ordinal == 0


def test_order_and_source_offset_are_distinct():
    raw = _doc('<img src="https://docs.google.com/drawings/x"><p>a</p><p>b</p>')

    model = core.build_document_model(raw)

    assert [b.order for b in model.blocks] == [0, 1]
    assert model.blocks[0].source_offset > 0
    assert model.blocks[0].source_offset < model.blocks[1].source_offset


def test_sample_document_blocks():
    model = core.build_document_model(_sample_html())

    offsets = [b.source_offset for b in model.blocks]
    assert offsets == sorted(offsets)
    assert [b.order for b in model.blocks] == list(range(len(model.blocks)))

    kinds = [b.kind for b in model.blocks]
    assert kinds == [
        BlockKind.HEADING,
        BlockKind.PARAGRAPH,
        BlockKind.PARAGRAPH,
        BlockKind.DIVIDER,
        BlockKind.HEADING,
        BlockKind.PARAGRAPH,
        BlockKind.LIST_ITEM,
        BlockKind.LIST_ITEM,
        BlockKind.PARAGRAPH,
        BlockKind.LIST_ITEM,
        BlockKind.PARAGRAPH,
        BlockKind.IMAGE,
        BlockKind.PARAGRAPH,
        BlockKind.PARAGRAPH,
    ]

    intro, body, green = model.blocks[0], model.blocks[1], model.blocks[2]
    assert intro.anchor_id == "h.intro"
    assert intro.color == "#000000"
    assert body.color == "#222222"
    assert body.markup == (
        '<font color="#000000">The “quick” brown fox…</font><font color="#cc0000"> jumps</font>'
    )
    assert green.color == "#38761d"
    assert green.markup == "Green paragraph"

    assert model.blocks[6].markup == '1. <font color="#000000">Open the file</font>'
    assert model.blocks[9].list_marker == "•"

    image = model.blocks[11]
    assert (image.image_src, image.image_width, image.image_height) == ("images/image1.png", 600, 400)

    link = model.blocks[13]
    assert link.link_target_id == "h.intro"
    assert model.resolve_anchor(link.link_target_id) is intro
    assert model.anchors == {"h.intro": 0, "h.steps": 4}
    assert len(model.warnings) == 1


def test_verbose_build_logs_progress(monkeypatch, caplog):
    monkeypatch.setattr(core.LOG, "propagate", True)

    with caplog.at_level(logging.INFO, logger="html2blocks"):
        core.build_document_model(_doc("<p>a</p><p>b</p>"), BuildConfig(verbose=True))

    messages = [record.getMessage() for record in caplog.records]
    assert any("Building blocks" in msg and "[2/2]" in msg for msg in messages)
