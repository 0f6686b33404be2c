import pytest
from pathlib import Path

from exam_localizer.utils import (
    canonical_url,
    is_contained_local_path,
    is_remote_reference,
    local_image_path,
    relative_prefix,
    resolve_local_reference,
)


class TestCanonicalUrl:
    def test_resized_and_plain_urls_share_identifier(self):
        resized = canonical_url("https://cdn.example.com/fly/@width/img/q1.png?v=2")
        plain = canonical_url("https://cdn.example.com/img/q1.png")

        assert resized == plain == "https://cdn.example.com/img/q1.png"

    @pytest.mark.parametrize(
        "url",
        [
            "https://cdn.example.com/fly/@width/img/q1.png?v=2",
            "https://cdn.example.com/fly/@width/fly/@width/img/q1.png",
            "https://cdn.example.com/a/fly/@800/b.png#frag",
            "https://cdn.example.com/img/q1.png",
            "data:image/png;base64,AAAA",
        ],
    )
    def test_canonicalization_is_idempotent(self, url):
        once = canonical_url(url)

        assert canonical_url(once) == once

    def test_strips_query_and_fragment(self):
        assert canonical_url(" https://h.com/a.png?x=1#top ") == "https://h.com/a.png"

    def test_keeps_host_named_fly(self):
        assert canonical_url("https://fly/@x/a.png") == "https://fly/@x/a.png"


class TestLocalImagePath:
    def test_replaces_host_dots_and_keeps_path(self):
        path = local_image_path("https://cdn.example.com/img/sub/q1.png")

        assert path == "images/cdn_example_com/img/sub/q1.png"

    def test_is_deterministic(self):
        url = "https://cdn.example.com/img/q1.png"

        assert local_image_path(url) == local_image_path(url)

    @pytest.mark.parametrize(
        "url",
        [
            "data:image/png;base64,AAAA",
            "/relative/image.png",
            "https://cdn.example.com/",
            "https://cdn.example.com/img/../../etc/passwd",
            "ftp://cdn.example.com/img/q1.png",
        ],
    )
    def test_rejects_unstorable_urls(self, url):
        assert local_image_path(url) is None


def test_is_remote_reference():
    assert is_remote_reference("https://cdn.example.com/a.png")
    assert is_remote_reference("//cdn.example.com/a.png")
    assert is_remote_reference("data:image/png;base64,AA")
    assert not is_remote_reference("../../images/cdn_example_com/a.png")


def test_relative_prefix(tmp_path: Path):
    record_dir = tmp_path / "raw-local-images" / "jee-main"

    assert relative_prefix(record_dir, tmp_path) == "../../"
    assert relative_prefix(tmp_path, tmp_path) == ""


def test_resolve_local_reference():
    resolved = resolve_local_reference("../../images/h_com/a.png", "raw-local-images/jee")

    assert resolved == "images/h_com/a.png"
    assert resolve_local_reference("../../../a.png", "raw-local-images/jee") is None


def test_is_contained_local_path():
    assert is_contained_local_path(local_image_path("https://cdn.example.com/img/q1.png"))
    assert not is_contained_local_path("/images/h_com/a.png")
    assert not is_contained_local_path("images/h_com/../a.png")
    assert not is_contained_local_path("images\\h_com\\a.png")
    assert not is_contained_local_path("raw/h_com/a.png")
