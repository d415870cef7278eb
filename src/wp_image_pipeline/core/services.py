"""Service implementations for the batch image metadata pipeline."""

import re
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from .codec import decode_base64_payload, is_data_uri, to_data_uri
from .error_handling import BatchOperationContextManager
from .exceptions import ImagesPipelineError, InvalidImageIdError, ValidationError
from .html_images import find_img_tags
from .image_refs import ContentRef, ImageRef, owner_website_id, parse_image_id
from .models import (
    BatchResult,
    BatchResults,
    CatalogImage,
    ImageSource,
    ItemError,
    ItemSuccess,
    ProcessingResult,
    ProcessOptions,
    SingleImageResult,
    WebsiteRecord,
)
from .observability import LogContext, MetricsCollector, PerformanceMetrics
from .protocols import ContentStore, LoggerProtocol, WebsiteStore
from .resolvers import ImageSourceResolver
from .sinks import SinkWriter
from .transforms import ImageTransformService
from .wordpress import HttpFetcher, featured_media

HTML_TAG_PATTERN = re.compile(r"<[^>]*>")


def strip_html(html: Optional[str]) -> str:
    return HTML_TAG_PATTERN.sub("", html or "").strip()


@dataclass
class BatchItem:
    """One entry of a batch request; ``ref`` is None when the id did not parse."""

    image_id: str
    ref: Optional[ImageRef] = None
    parse_error: Optional[InvalidImageIdError] = None

    @classmethod
    def from_raw(cls, raw_id: Any) -> "BatchItem":
        image_id = raw_id if isinstance(raw_id, str) else str(raw_id)
        try:
            return cls(image_id=image_id, ref=parse_image_id(raw_id))
        except InvalidImageIdError as e:
            return cls(image_id=image_id, parse_error=e)


BatchProcessorFn = Callable[
    [List[BatchItem], Callable[[BatchItem], ProcessingResult]], List[ProcessingResult]
]


def _format_ms(seconds: float) -> str:
    return f"{round(seconds * 1000)}ms"


class ImageProcessingService:
    """Resolve, transform and write back a single batch item."""

    def __init__(
        self,
        resolver: ImageSourceResolver,
        transformer: ImageTransformService,
        sink: SinkWriter,
        logger: LoggerProtocol,
        metrics_collector: Optional[MetricsCollector] = None,
    ):
        self._resolver = resolver
        self._transformer = transformer
        self._sink = sink
        self._logger = logger
        self._metrics_collector = metrics_collector
        self._record_locks: Dict[str, threading.Lock] = {}
        self._record_locks_guard = threading.Lock()

    @contextmanager
    def _record_lock(self, ref: ImageRef) -> Iterator[None]:
        # Items editing the same content body run one at a time
        if not isinstance(ref, ContentRef):
            yield
            return
        with self._record_locks_guard:
            lock = self._record_locks.setdefault(ref.content_id, threading.Lock())
        with lock:
            yield

    def process_item(
        self, item: BatchItem, options: ProcessOptions, user_id: str
    ) -> ProcessingResult:
        """Process one item; every failure is captured in the returned result."""
        start_time = time.time()
        log_context = LogContext(
            correlation_id=f"img_{item.image_id}_{int(start_time * 1000)}",
            operation="process_image",
            component="image_processing_service",
            user_id=user_id,
        ).with_metadata(image_id=item.image_id, action=options.action.value)

        result = ProcessingResult(image_id=item.image_id)
        website_id = owner_website_id(item.ref) if item.ref is not None else None

        try:
            if item.ref is None:
                raise item.parse_error or InvalidImageIdError(item.image_id)

            with self._record_lock(item.ref):
                self._logger.debug("Resolving image", log_context.with_operation("resolve"))
                resolved = self._resolver.resolve(item.ref, user_id)
                website_id = resolved.owner_website_id

                self._logger.debug(
                    "Transforming image",
                    log_context.with_operation("transform"),
                    input_bytes=len(resolved.data),
                )
                output = self._transformer.transform(resolved.data, options)

                self._logger.debug("Writing image", log_context.with_operation("write"))
                outcome = self._sink.write(item.image_id, resolved, output, options)

            result.success = True
            result.message = outcome.message
            result.destination = outcome.destination
            result.published = outcome.published
            result.new_url = outcome.new_url
            result.processing_time = time.time() - start_time

            self._logger.info(
                "Successfully processed image",
                log_context,
                destination=outcome.destination,
                processing_time_ms=round(result.processing_time * 1000),
            )

        except Exception as e:
            result.success = False
            result.error = str(e) or e.__class__.__name__
            result.processing_time = time.time() - start_time

            self._logger.error(
                "Image processing failed", log_context.with_metadata(error=result.error)
            )
            if item.ref is not None:
                self._sink.record_audit(
                    item.image_id, website_id, options, success=False, error=result.error
                )

        if self._metrics_collector is not None:
            self._metrics_collector.record_metric(
                PerformanceMetrics(
                    operation="process_image",
                    start_time=start_time,
                    end_time=start_time + result.processing_time,
                    success=result.success,
                    error_message=result.error or None,
                    metadata={"image_id": item.image_id},
                )
            )
        return result


class BatchOrchestrator:
    """Validate a batch request, run every item and aggregate the report."""

    def __init__(
        self,
        processing_service: ImageProcessingService,
        batch_processor: BatchProcessorFn,
        logger: LoggerProtocol,
        metrics_collector: Optional[MetricsCollector] = None,
    ):
        self._processing_service = processing_service
        self._batch_processor = batch_processor
        self._logger = logger
        self._metrics_collector = metrics_collector

    @staticmethod
    def validate_request(image_ids: Any, options: Any) -> ProcessOptions:
        """
        Fail fast on a malformed request, before any item is touched.

        Raises:
            ValidationError: If ``image_ids`` is not a non-empty list, or
                ``options`` is missing, lacks an action or holds invalid values.
        """
        if not isinstance(image_ids, list) or not image_ids:
            raise ValidationError("imageIds must be a non-empty array")

        if isinstance(options, ProcessOptions):
            return options
        if not isinstance(options, Mapping) or not options.get("action"):
            raise ValidationError("options.action is required")

        try:
            return ProcessOptions.model_validate(dict(options))
        except PydanticValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            )
            raise ValidationError(f"Invalid options: {problems}") from e

    def process(
        self,
        image_ids: Any,
        options: Union[ProcessOptions, Mapping[str, Any], None],
        user_id: str,
    ) -> BatchResult:
        """Process every id; per-item failures never abort the batch."""
        process_options = self.validate_request(image_ids, options)
        start_time = time.time()
        items = [BatchItem.from_raw(raw_id) for raw_id in image_ids]

        self._logger.info(
            f"Batch processing {len(items)} images",
            action=process_options.action.value,
            user_id=user_id,
        )

        with BatchOperationContextManager(
            f"Batch {process_options.action.value} of {len(items)} images"
        ) as batch_context:
            results = self._batch_processor(
                items,
                lambda item: self._processing_service.process_item(
                    item, process_options, user_id
                ),
            )
            for result in results:
                if not result.success:
                    batch_context.add_error(result.error, result.image_id)

        batch_result = self._aggregate(results, process_options, time.time() - start_time)

        if self._metrics_collector is not None:
            self._metrics_collector.record_metric(
                PerformanceMetrics(
                    operation="batch_process",
                    start_time=start_time,
                    end_time=time.time(),
                    success=batch_result.failed == 0,
                    metadata={"total": batch_result.total},
                )
            )
        self._logger.info(batch_result.message, processing_time=batch_result.processing_time)
        return batch_result

    @staticmethod
    def _aggregate(
        results: List[ProcessingResult], options: ProcessOptions, elapsed: float
    ) -> BatchResult:
        report = BatchResults()
        errors: List[ItemError] = []

        for result in results:
            if result.success:
                report.success.append(
                    ItemSuccess(
                        image_id=result.image_id,
                        processing_time=_format_ms(result.processing_time),
                        message=result.message,
                        action=options.action,
                        scramble_type=options.scramble_type,
                        destination=result.destination,
                        published=result.published,
                        new_url=result.new_url,
                    )
                )
            else:
                report.failed.append(result.image_id)
                errors.append(ItemError(image_id=result.image_id, message=result.error))

        total = len(results)
        processed = len(report.success)
        return BatchResult(
            processed=processed,
            failed=len(report.failed),
            total=total,
            success_rate=f"{round(processed / total * 100) if total else 0}%",
            message=f"Processed {processed} of {total} images",
            processing_time=_format_ms(elapsed),
            results=report,
            errors=errors,
        )


class ImageCatalogService:
    """List every image the batch endpoint can address, per website."""

    def __init__(
        self,
        websites: WebsiteStore,
        contents: ContentStore,
        resolver: ImageSourceResolver,
        logger: LoggerProtocol,
    ):
        self._websites = websites
        self._contents = contents
        self._resolver = resolver
        self._logger = logger

    def list_images(
        self, user_id: str, website_id: Optional[str] = None
    ) -> List[CatalogImage]:
        websites = self._websites.list_for_user(user_id)
        if website_id:
            websites = [w for w in websites if w.id == website_id]

        images: List[CatalogImage] = []
        seen_urls = set()
        for website in websites:
            if not website.url:
                self._logger.info(f"Website {website.id} has no URL configured, skipping")
                continue
            try:
                self._add_media(website, images, seen_urls)
            except ImagesPipelineError as e:
                self._logger.warning(f"Error fetching media for website {website.id}: {e}")
            try:
                self._add_posts(website, images, seen_urls)
            except ImagesPipelineError as e:
                self._logger.warning(f"Error fetching posts for website {website.id}: {e}")

        names = {w.id: w.name for w in self._websites.list_for_user(user_id)}
        self._add_contents(user_id, website_id, names, images)

        self._logger.info(
            f"Found {len(images)} images",
            with_metadata=sum(1 for i in images if i.has_metadata),
        )
        return images

    def _add_media(
        self, website: WebsiteRecord, images: List[CatalogImage], seen_urls: set
    ) -> None:
        client = self._resolver.client_for(website)
        for media in client.list_media():
            url = media.get("source_url")
            if not url or not str(media.get("mime_type", "")).startswith("image/"):
                continue
            alt_text = media.get("alt_text") or ""
            caption = strip_html((media.get("caption") or {}).get("rendered"))
            description = strip_html((media.get("description") or {}).get("rendered"))
            seen_urls.add(url)
            images.append(
                CatalogImage(
                    id=f"wp_media_{website.id}_{media['id']}",
                    url=url,
                    content_id=f"media_{media['id']}",
                    content_title=strip_html((media.get("title") or {}).get("rendered"))
                    or "Media Library",
                    website_id=website.id,
                    website_name=website.name,
                    has_metadata=bool(alt_text.strip() or caption or description),
                    metadata_details={
                        "mediaId": media["id"],
                        "altText": alt_text,
                        "caption": caption,
                        "description": description,
                    },
                    source=ImageSource.WORDPRESS_MEDIA,
                )
            )

    def _add_posts(
        self, website: WebsiteRecord, images: List[CatalogImage], seen_urls: set
    ) -> None:
        client = self._resolver.client_for(website)
        for post in client.list_posts():
            title = strip_html((post.get("title") or {}).get("rendered")) or "WordPress Post"
            media = featured_media(post)
            if media is not None and media["source_url"] not in seen_urls:
                seen_urls.add(media["source_url"])
                alt_text = media.get("alt_text") or ""
                images.append(
                    CatalogImage(
                        id=f"wp_post_{website.id}_{post['id']}_featured",
                        url=media["source_url"],
                        content_id=f"post_{post['id']}",
                        content_title=title,
                        website_id=website.id,
                        website_name=website.name,
                        has_metadata=bool(alt_text),
                        metadata_details={
                            "postId": post["id"],
                            "mediaId": media.get("id"),
                            "altText": alt_text,
                            "isFeatured": True,
                        },
                        source=ImageSource.WORDPRESS_POST,
                    )
                )

            rendered = (post.get("content") or {}).get("rendered")
            for tag in find_img_tags(rendered):
                if tag.is_data_uri or tag.src in seen_urls:
                    continue
                seen_urls.add(tag.src)
                images.append(
                    CatalogImage(
                        id=f"wp_post_{website.id}_{post['id']}_content_{tag.index}",
                        url=tag.src,
                        content_id=f"post_{post['id']}",
                        content_title=title,
                        website_id=website.id,
                        website_name=website.name,
                        has_metadata=tag.alt is not None,
                        metadata_details={"postId": post["id"], "altText": tag.alt or ""},
                        source=ImageSource.WORDPRESS_POST,
                    )
                )

    def _add_contents(
        self,
        user_id: str,
        website_id: Optional[str],
        website_names: Dict[str, str],
        images: List[CatalogImage],
    ) -> None:
        for content in self._contents.list(website_id):
            if content.user_id is not None and content.user_id != user_id:
                continue
            for tag in find_img_tags(content.body):
                images.append(
                    CatalogImage(
                        id=f"content_{content.id}_{tag.index}",
                        url=tag.src,
                        content_id=content.id,
                        content_title=content.title or "Content",
                        website_id=content.website_id,
                        website_name=website_names.get(content.website_id or "", "Unknown"),
                        has_metadata=tag.alt is not None,
                        metadata_details={
                            "altText": tag.alt or "",
                            "wordpressPostId": content.wordpress_post_id,
                            "status": content.status,
                        },
                        source=ImageSource.DATABASE_CONTENT,
                    )
                )


class SingleImageService:
    """Process one image handed over directly rather than by identifier."""

    DEFAULT_OPTIONS: Dict[str, Any] = {
        "action": "add",
        "optimize": True,
        "maxWidth": 1920,
        "quality": 85,
    }

    def __init__(
        self,
        fetcher: HttpFetcher,
        transformer: ImageTransformService,
        logger: LoggerProtocol,
    ):
        self._fetcher = fetcher
        self._transformer = transformer
        self._logger = logger

    def load(self, image_data: Any) -> bytes:
        """Bytes from a data URI, an http(s) URL or bare base64."""
        if not isinstance(image_data, str) or not image_data:
            raise ValidationError("imageData is required")
        if image_data.startswith(("http://", "https://")):
            return self._fetcher.download(image_data)
        if not is_data_uri(image_data):
            self._logger.debug("imageData is not a data URI, reading it as bare base64")
        return decode_base64_payload(image_data)

    def process(
        self, image_data: Any, options: Optional[Mapping[str, Any]] = None
    ) -> SingleImageResult:
        payload = {**self.DEFAULT_OPTIONS, **dict(options or {})}
        try:
            process_options = ProcessOptions.model_validate(payload)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid options: {e}") from e

        original = self.load(image_data)
        output = self._transformer.transform(original, process_options)

        ratio = round((1 - len(output.data) / len(original)) * 100, 2)
        self._logger.info(
            "Processed single image",
            original_size=len(original),
            processed_size=len(output.data),
            compression_ratio=ratio,
        )
        return SingleImageResult(
            data=to_data_uri(output.data, output.format),
            format=output.format,
            width=output.width,
            height=output.height,
            original_size=len(original),
            processed_size=len(output.data),
            compression_ratio=ratio,
            metadata_added=process_options.writes_metadata,
        )
