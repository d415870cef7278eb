"""Typed image identifiers.

The UI addresses images with underscore-joined strings:

    wp_media_<websiteId>_<mediaId>
    wp_post_<websiteId>_<postId>_featured
    wp_post_<websiteId>_<postId>_content_<index>
    wp_post_<websiteId>_<postId>_<index>
    content_<contentId>[_<index>]

They are parsed once, at the edge, into one of three frozen dataclasses so
nothing downstream ever splits strings again.
"""

from dataclasses import dataclass
from typing import Optional, Union

from .exceptions import InvalidImageIdError


@dataclass(frozen=True)
class WordpressMediaRef:
    """An attachment in a WordPress media library."""

    website_id: str
    media_id: str

    @property
    def image_id(self) -> str:
        return f"wp_media_{self.website_id}_{self.media_id}"


@dataclass(frozen=True)
class WordpressPostRef:
    """A post's featured image, or its Nth inline ``<img>`` when ``featured`` is False."""

    website_id: str
    post_id: str
    featured: bool = True
    index: int = 0

    @property
    def image_id(self) -> str:
        if self.featured:
            return f"wp_post_{self.website_id}_{self.post_id}_featured"
        return f"wp_post_{self.website_id}_{self.post_id}_content_{self.index}"


@dataclass(frozen=True)
class ContentRef:
    """The Nth ``<img>`` of a locally stored content body."""

    content_id: str
    index: int = 0

    @property
    def image_id(self) -> str:
        return f"content_{self.content_id}_{self.index}"


ImageRef = Union[WordpressMediaRef, WordpressPostRef, ContentRef]


def _parse_index(image_id: str, raw: str) -> int:
    if not raw.isdigit():
        raise InvalidImageIdError(image_id, f"image index '{raw}' is not a number")
    return int(raw)


def _require_numeric_id(image_id: str, raw: str, what: str) -> str:
    if not raw.isdigit():
        raise InvalidImageIdError(image_id, f"{what} '{raw}' is not numeric")
    return raw


def _parse_wordpress(image_id: str, parts: list) -> ImageRef:
    if len(parts) < 4 or not parts[2]:
        raise InvalidImageIdError(image_id, "missing website or object id")

    kind, website_id = parts[1], parts[2]

    if kind == "media":
        if len(parts) != 4:
            raise InvalidImageIdError(image_id, "unexpected trailing fields")
        return WordpressMediaRef(
            website_id=website_id,
            media_id=_require_numeric_id(image_id, parts[3], "media id"),
        )

    if kind == "post":
        post_id = _require_numeric_id(image_id, parts[3], "post id")
        tail = parts[4:]
        if tail == ["featured"]:
            return WordpressPostRef(website_id=website_id, post_id=post_id)
        if len(tail) == 2 and tail[0] == "content":
            return WordpressPostRef(
                website_id=website_id,
                post_id=post_id,
                featured=False,
                index=_parse_index(image_id, tail[1]),
            )
        if len(tail) == 1:
            return WordpressPostRef(
                website_id=website_id,
                post_id=post_id,
                featured=False,
                index=_parse_index(image_id, tail[0]),
            )
        raise InvalidImageIdError(image_id, "expected 'featured' or 'content_<index>'")

    raise InvalidImageIdError(image_id, f"unknown WordPress image kind '{kind}'")


def _parse_content(image_id: str, rest: str) -> ContentRef:
    if not rest:
        raise InvalidImageIdError(image_id, "missing content id")
    content_id, sep, tail = rest.rpartition("_")
    if sep and content_id and tail.isdigit():
        return ContentRef(content_id=content_id, index=int(tail))
    return ContentRef(content_id=rest, index=0)


def parse_image_id(image_id: str) -> ImageRef:
    """Parse an identifier string into its typed reference.

    Raises:
        InvalidImageIdError: If the string follows none of the conventions.
    """
    if not isinstance(image_id, str) or not image_id:
        raise InvalidImageIdError(str(image_id), "identifier must be a non-empty string")

    if image_id.startswith("wp_"):
        return _parse_wordpress(image_id, image_id.split("_"))
    if image_id.startswith("content_"):
        return _parse_content(image_id, image_id[len("content_"):])

    raise InvalidImageIdError(image_id, "expected a 'wp_' or 'content_' prefix")


def format_image_id(ref: ImageRef) -> str:
    return ref.image_id


def owner_website_id(ref: ImageRef) -> Optional[str]:
    """Website id carried by the identifier itself, if any."""
    if isinstance(ref, (WordpressMediaRef, WordpressPostRef)):
        return ref.website_id
    return None
