"""Image tag scanning and attribute rewriting for embedded HTML fragments."""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Iterator, List, Optional

from bs4 import BeautifulSoup

from .config import MARKER_ATTRIBUTE
from .utils import canonical_url

IMG_TAG_PATTERN = re.compile(r"""<img\b(?:[^>"']|"[^"]*"|'[^']*')*>""", re.IGNORECASE)
ATTRIBUTE_PATTERN = re.compile(
    r"""(?P<lead>\s+)(?P<name>[^\s"'>/=]+)"""
    r"""(?:\s*=\s*(?P<value>"[^"]*"|'[^']*'|[^\s"'=<>`]+))?"""
)


@dataclass
class ImageTag:
    """One ``<img>`` element located inside an HTML fragment."""

    text: str
    start: int
    end: int
    src: Optional[str]
    marker: Optional[str]

    @property
    def canonical(self) -> Optional[str]:
        """Canonical identifier, preferring the marker attribute over ``src``."""
        value = self.marker or self.src
        if not value:
            return None
        return canonical_url(value)


@dataclass
class _AttributeSpan:
    name: str
    start: int
    end: int
    value_start: Optional[int]
    value_end: Optional[int]
    quote: str


def _parse_attributes(tag_html: str) -> Dict[str, object]:
    soup = BeautifulSoup(tag_html, "html.parser")
    img = soup.find("img")
    if img is None:
        return {}
    return dict(img.attrs)


def _string_attribute(attrs: Dict[str, object], name: str) -> Optional[str]:
    value = attrs.get(name)
    if isinstance(value, list):
        value = " ".join(value)
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def parse_image_tag(tag_html: str, start: int = 0, marker: str = MARKER_ATTRIBUTE) -> ImageTag:
    """Read ``src`` and the marker attribute from a single tag, in any attribute order."""
    attrs = _parse_attributes(tag_html)
    return ImageTag(
        text=tag_html,
        start=start,
        end=start + len(tag_html),
        src=_string_attribute(attrs, "src"),
        marker=_string_attribute(attrs, marker),
    )


def iter_image_tags(fragment: Optional[str], marker: str = MARKER_ATTRIBUTE) -> Iterator[ImageTag]:
    """Yield image tags in document order. Both ``<img>`` and ``<img/>`` forms match."""
    if not fragment:
        return
    for match in IMG_TAG_PATTERN.finditer(fragment):
        yield parse_image_tag(match.group(0), match.start(), marker)


def image_sources(fragment: Optional[str]) -> List[str]:
    """Rendering ``src`` values of every image tag that has one."""
    return [tag.src for tag in iter_image_tags(fragment) if tag.src]


def _attribute_spans(tag_html: str) -> Iterator[_AttributeSpan]:
    # skip "<img" and stop before the closing ">"
    for match in ATTRIBUTE_PATTERN.finditer(tag_html, 4, len(tag_html) - 1):
        value = match.group("value")
        quote = value[0] if value and value[0] in "\"'" else ""
        yield _AttributeSpan(
            name=match.group("name").lower(),
            start=match.start(),
            end=match.end(),
            value_start=match.start("value") if value is not None else None,
            value_end=match.end("value") if value is not None else None,
            quote=quote,
        )


def _quote(value: str, quote: str) -> str:
    quote = quote or '"'
    escaped = html.escape(value, quote=False)
    escaped = escaped.replace(quote, "&quot;" if quote == '"' else "&#x27;")
    return f"{quote}{escaped}{quote}"


def rewrite_image_tag(tag_html: str, src: str, drop: Iterable[str] = (MARKER_ATTRIBUTE,)) -> str:
    """Set the ``src`` value of a tag and remove the ``drop`` attributes.

    Every other byte of the tag is kept as-is, including attribute order,
    quoting style and a trailing ``/``.
    """
    dropped = {name.lower() for name in drop}
    pieces: List[str] = []
    cursor = 0
    replaced = False
    for span in _attribute_spans(tag_html):
        if span.name in dropped:
            pieces.append(tag_html[cursor : span.start])
            cursor = span.end
        elif span.name == "src" and not replaced:
            if span.value_start is None:
                pieces.append(tag_html[cursor : span.end])
                pieces.append("=" + _quote(src, '"'))
            else:
                pieces.append(tag_html[cursor : span.value_start])
                pieces.append(_quote(src, span.quote))
            cursor = span.end
            replaced = True
    pieces.append(tag_html[cursor:])
    rewritten = "".join(pieces)
    if not replaced:
        rewritten = rewritten[:4] + " src=" + _quote(src, '"') + rewritten[4:]
    return rewritten


def replace_image_tags(
    fragment: str,
    replacer: Callable[[ImageTag], Optional[str]],
    marker: str = MARKER_ATTRIBUTE,
) -> str:
    """Rebuild a fragment, substituting tags for which ``replacer`` returns text."""
    pieces: List[str] = []
    cursor = 0
    for tag in iter_image_tags(fragment, marker):
        replacement = replacer(tag)
        if replacement is None:
            continue
        pieces.append(fragment[cursor : tag.start])
        pieces.append(replacement)
        cursor = tag.end
    pieces.append(fragment[cursor:])
    return "".join(pieces)
