"""Image source resolver: turn a typed image reference into raw bytes."""

import re
from dataclasses import dataclass
from typing import Optional

from .codec import decode_base64_payload
from .exceptions import SourceNotFoundError
from .html_images import ImgTag, select_img_tag
from .image_refs import ContentRef, ImageRef, WordpressMediaRef, WordpressPostRef
from .logging_config import get_logger
from .models import ContentRecord, PipelineSettings, WebsiteRecord
from .protocols import ContentStore, WebsiteStore
from .wordpress import HttpFetcher, WordPressClient, featured_media, media_source_url

WP_IMAGE_CLASS_PATTERN = re.compile(r"wp-image-(\d+)")

logger = get_logger("resolver")


@dataclass
class ResolvedImage:
    """Raw bytes of one image plus everything the sink needs to write it back."""

    ref: ImageRef
    data: bytes
    source_url: Optional[str] = None
    website: Optional[WebsiteRecord] = None
    media_id: Optional[str] = None
    content: Optional[ContentRecord] = None
    img_tag: Optional[ImgTag] = None

    @property
    def owner_website_id(self) -> Optional[str]:
        if self.website is not None:
            return self.website.id
        if self.content is not None:
            return self.content.website_id
        return None


class ImageSourceResolver:
    """Fetch image bytes from the WordPress media library, a post, or stored content."""

    def __init__(
        self,
        websites: WebsiteStore,
        contents: ContentStore,
        fetcher: HttpFetcher,
        settings: PipelineSettings,
    ):
        self._websites = websites
        self._contents = contents
        self._fetcher = fetcher
        self._settings = settings

    def website_for(self, user_id: str, website_id: str) -> WebsiteRecord:
        website = self._websites.get_for_user(user_id, website_id)
        if website is None or not website.url:
            raise SourceNotFoundError(f"Website configuration not found: {website_id}")
        return website

    def client_for(self, website: WebsiteRecord) -> WordPressClient:
        return WordPressClient(website, self._fetcher, self._settings.default_username)

    def resolve(self, ref: ImageRef, user_id: str) -> ResolvedImage:
        """Resolve ``ref`` into bytes.

        Raises:
            SourceNotFoundError: Missing website, media, post, content or index,
                or a failed download.
            DecodeError: An embedded data URI that is not valid base64.
        """
        if isinstance(ref, WordpressMediaRef):
            return self._resolve_media(ref, user_id)
        if isinstance(ref, WordpressPostRef):
            return self._resolve_post(ref, user_id)
        if isinstance(ref, ContentRef):
            return self._resolve_content(ref)
        raise SourceNotFoundError(f"Unsupported image reference: {ref!r}")

    def _resolve_media(self, ref: WordpressMediaRef, user_id: str) -> ResolvedImage:
        website = self.website_for(user_id, ref.website_id)
        client = self.client_for(website)

        media = client.get_media(ref.media_id)
        url = media_source_url(media)
        if not url:
            raise SourceNotFoundError(f"Media {ref.media_id} has no source URL")

        logger.debug(f"[{ref.image_id}] media library image at {url}")
        return ResolvedImage(
            ref=ref,
            data=client.download(url),
            source_url=url,
            website=website,
            media_id=ref.media_id,
        )

    def _resolve_post(self, ref: WordpressPostRef, user_id: str) -> ResolvedImage:
        website = self.website_for(user_id, ref.website_id)
        client = self.client_for(website)
        post = client.get_post(ref.post_id)

        if ref.featured:
            media = featured_media(post)
            if media is None:
                raise SourceNotFoundError(f"Post {ref.post_id} has no featured image")
            url = media["source_url"]
            media_id = str(media["id"]) if media.get("id") is not None else None
            return ResolvedImage(
                ref=ref,
                data=client.download(url),
                source_url=url,
                website=website,
                media_id=media_id,
            )

        rendered = (post.get("content") or {}).get("rendered") or ""
        tag = select_img_tag(rendered, ref.index)
        if tag is None:
            raise SourceNotFoundError(
                f"Image not found at index {ref.index} in post {ref.post_id}"
            )

        class_match = WP_IMAGE_CLASS_PATTERN.search(tag.tag)
        if tag.is_data_uri:
            data, url = decode_base64_payload(tag.src), None
        else:
            data, url = client.download(tag.src), tag.src
        return ResolvedImage(
            ref=ref,
            data=data,
            source_url=url,
            website=website,
            media_id=class_match.group(1) if class_match else None,
            img_tag=tag,
        )

    def _resolve_content(self, ref: ContentRef) -> ResolvedImage:
        content = self._contents.get(ref.content_id)
        if content is None:
            raise SourceNotFoundError(f"Content not found: {ref.content_id}")

        tag = select_img_tag(content.body, ref.index)
        if tag is None:
            raise SourceNotFoundError(
                f"Image not found at index {ref.index} in content {ref.content_id}"
            )

        if tag.is_data_uri:
            logger.debug(f"[{ref.image_id}] embedded base64 image")
            data, url = decode_base64_payload(tag.src), None
        else:
            data, url = self._fetcher.download(tag.src), tag.src

        return ResolvedImage(
            ref=ref, data=data, source_url=url, content=content, img_tag=tag
        )
