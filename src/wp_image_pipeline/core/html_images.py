"""Locate and rewrite ``<img>`` tags inside stored or rendered HTML."""

import re
from dataclasses import dataclass
from typing import List, Optional

# The real src, not data-src or data-lazy-src written by lazy-load plugins
IMG_TAG_PATTERN = re.compile(
    r"<img\b[^>]*?(?<![\w-])src\s*=\s*[\"']([^\"']+)[\"'][^>]*>", re.IGNORECASE
)
ALT_PATTERN = re.compile(r"(?<![\w-])alt=[\"']([^\"']*?)[\"']", re.IGNORECASE)
RESPONSIVE_ATTR_PATTERN = re.compile(
    r"\s+(?:srcset|sizes)\s*=\s*(?:\"[^\"]*\"|'[^']*')", re.IGNORECASE
)


@dataclass(frozen=True)
class ImgTag:
    """One ``<img>`` occurrence; offsets are absolute positions in the HTML."""

    index: int
    src: str
    tag: str
    start: int
    end: int
    src_start: int
    src_end: int

    @property
    def alt(self) -> Optional[str]:
        match = ALT_PATTERN.search(self.tag)
        return match.group(1) if match else None

    @property
    def is_data_uri(self) -> bool:
        return self.src.startswith("data:")


def _is_emoji(src: str) -> bool:
    # WordPress renders emoji as <img> tags served from s.w.org/images/core/emoji
    return not src.startswith("data:") and "emoji" in src


def find_img_tags(html: Optional[str]) -> List[ImgTag]:
    """All image tags in document order, emoji images excluded, indexed from 0."""
    tags: List[ImgTag] = []
    for match in IMG_TAG_PATTERN.finditer(html or ""):
        src = match.group(1)
        if _is_emoji(src):
            continue
        tags.append(
            ImgTag(
                index=len(tags),
                src=src,
                tag=match.group(0),
                start=match.start(),
                end=match.end(),
                src_start=match.start(1),
                src_end=match.end(1),
            )
        )
    return tags


def select_img_tag(html: Optional[str], index: int) -> Optional[ImgTag]:
    tags = find_img_tags(html)
    if 0 <= index < len(tags):
        return tags[index]
    return None


def replace_img_src(html: str, tag: ImgTag, new_src: str) -> str:
    """Swap the src of exactly this tag occurrence, leaving the rest untouched.

    ``srcset`` and ``sizes`` are dropped from the rewritten tag since their
    candidates still point at the unprocessed files.

    Raises:
        ValueError: If ``html`` no longer holds ``tag`` at its recorded offsets.
    """
    if html[tag.start : tag.end] != tag.tag:
        raise ValueError(f"Image tag {tag.index} is no longer at its recorded position")
    before = RESPONSIVE_ATTR_PATTERN.sub("", html[tag.start : tag.src_start])
    after = RESPONSIVE_ATTR_PATTERN.sub("", html[tag.src_end : tag.end])
    return html[: tag.start] + before + new_src + after + html[tag.end :]
