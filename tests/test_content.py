from exam_localizer.content import (
    image_sources,
    iter_image_tags,
    parse_image_tag,
    replace_image_tags,
    rewrite_image_tag,
)


class TestImageTagScanning:
    def test_marker_takes_precedence_over_src(self):
        tag = parse_image_tag(
            '<img src="https://cdn.example.com/fly/@width/a.png?v=3" data-orsrc="https://cdn.example.com/a.png">'
        )

        assert tag.marker == "https://cdn.example.com/a.png"
        assert tag.canonical == "https://cdn.example.com/a.png"

    def test_attribute_order_does_not_matter(self):
        first = parse_image_tag('<img data-orsrc="https://h.com/a.png" src="https://h.com/b.png">')
        second = parse_image_tag('<img src="https://h.com/b.png" data-orsrc="https://h.com/a.png">')

        assert first.canonical == second.canonical == "https://h.com/a.png"

    def test_src_only_tag_is_canonicalized(self):
        tag = parse_image_tag("<img src='https://h.com/fly/@width/a.png?x=1'/>")

        assert tag.marker is None
        assert tag.canonical == "https://h.com/a.png"

    def test_finds_open_and_self_closing_forms_in_order(self):
        fragment = (
            '<p>one <IMG SRC="https://h.com/1.png"> two <img src="https://h.com/2.png"/>'
            ' three <img alt="a > b" src="https://h.com/3.png" /></p>'
        )

        tags = list(iter_image_tags(fragment))

        assert [tag.canonical for tag in tags] == [
            "https://h.com/1.png",
            "https://h.com/2.png",
            "https://h.com/3.png",
        ]
        assert fragment[tags[2].start : tags[2].end] == tags[2].text

    def test_tag_without_source_has_no_canonical(self):
        assert parse_image_tag('<img alt="blank">').canonical is None

    def test_empty_fragment_yields_nothing(self):
        assert list(iter_image_tags(None)) == []
        assert image_sources("") == []

    def test_entities_in_attribute_values_are_decoded(self):
        tag = parse_image_tag('<img src="https://h.com/a.png?x=1&amp;y=2">')

        assert tag.src == "https://h.com/a.png?x=1&y=2"


class TestRewriteImageTag:
    def test_replaces_src_and_drops_marker(self):
        tag = '<img src="https://h.com/fly/@width/a.png?v=2" data-orsrc="https://h.com/a.png" alt="x">'

        rewritten = rewrite_image_tag(tag, "../../images/h_com/a.png")

        assert rewritten == '<img src="../../images/h_com/a.png" alt="x">'

    def test_keeps_quote_style_and_self_closing_slash(self):
        tag = "<img style='width:10px' src='https://h.com/a.png' />"

        rewritten = rewrite_image_tag(tag, "images/h_com/a.png")

        assert rewritten == "<img style='width:10px' src='images/h_com/a.png' />"

    def test_marker_before_src(self):
        tag = '<img data-orsrc="https://h.com/a.png" class="q" src="https://h.com/x.png?1">'

        rewritten = rewrite_image_tag(tag, "images/h_com/a.png")

        assert rewritten == '<img class="q" src="images/h_com/a.png">'

    def test_adds_src_when_only_marker_present(self):
        tag = '<img data-orsrc="https://h.com/a.png">'

        rewritten = rewrite_image_tag(tag, "images/h_com/a.png")

        assert rewritten == '<img src="images/h_com/a.png">'

    def test_src_text_inside_other_attribute_is_untouched(self):
        tag = '<img alt="the src=here label" src="https://h.com/a.png">'

        rewritten = rewrite_image_tag(tag, "images/h_com/a.png")

        assert rewritten == '<img alt="the src=here label" src="images/h_com/a.png">'


def test_replace_image_tags_preserves_surrounding_bytes():
    fragment = 'A <img src="https://h.com/1.png"> B <img src="https://h.com/2.png"> C'

    result = replace_image_tags(
        fragment,
        lambda tag: "<img>" if tag.canonical.endswith("2.png") else None,
    )

    assert result == 'A <img src="https://h.com/1.png"> B <img> C'
