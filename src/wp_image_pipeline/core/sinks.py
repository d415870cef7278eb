"""Sink writer: persist a transformed image back to the system that owns it."""

from dataclasses import dataclass
from typing import Callable, Optional

from .codec import to_data_uri
from .exceptions import SinkError
from .image_refs import ContentRef
from .logging_config import get_logger
from .models import Action, MetadataAuditRecord, ProcessOptions, WebsiteRecord
from .protocols import AuditLog, ContentStore
from .resolvers import ResolvedImage
from .html_images import replace_img_src
from .transforms import TransformOutput
from .wordpress import WordPressClient

DESTINATION_WORDPRESS = "wordpress"
DESTINATION_CONTENT = "content"
DESTINATION_LOCAL = "local"

logger = get_logger("sink")


@dataclass
class SinkOutcome:
    """Where the processed image ended up. ``published`` is tracked apart from success."""

    message: str
    destination: str
    published: bool = False
    new_url: Optional[str] = None


class SinkWriter:
    """Write transformed images back and keep the metadata audit trail."""

    def __init__(
        self,
        contents: ContentStore,
        audit_log: AuditLog,
        client_factory: Callable[[WebsiteRecord], WordPressClient],
    ):
        self._contents = contents
        self._audit_log = audit_log
        self._client_factory = client_factory

    def write(
        self,
        image_id: str,
        resolved: ResolvedImage,
        output: TransformOutput,
        options: ProcessOptions,
    ) -> SinkOutcome:
        """
        Persist ``output`` and record a successful audit entry.

        Raises:
            SinkError: If a content body cannot be rewritten or saved. WordPress
                upload failures never raise; they degrade to a local result.
        """
        if isinstance(resolved.ref, ContentRef):
            outcome = self._write_content(resolved, output)
        else:
            outcome = self._write_wordpress(image_id, resolved, output, options)

        self.record_audit(image_id, resolved.owner_website_id, options, success=True)
        return outcome

    def _write_wordpress(
        self,
        image_id: str,
        resolved: ResolvedImage,
        output: TransformOutput,
        options: ProcessOptions,
    ) -> SinkOutcome:
        website = resolved.website
        can_publish = (
            website is not None
            and website.has_credentials
            and resolved.media_id is not None
            and options.action != Action.STRIP
        )
        if not can_publish:
            return SinkOutcome("Processed successfully", DESTINATION_LOCAL)

        client = self._client_factory(website)
        try:
            new_url = client.replace_media(
                resolved.media_id, output.data, output.mime_type, output.extension, options
            )
        except SinkError as e:
            logger.warning(f"[{image_id}] WordPress update failed, kept local result: {e}")
            return SinkOutcome(
                "Processed locally (WordPress update failed)", DESTINATION_LOCAL
            )

        return SinkOutcome(
            "Updated in WordPress", DESTINATION_WORDPRESS, published=True, new_url=new_url
        )

    def _write_content(self, resolved: ResolvedImage, output: TransformOutput) -> SinkOutcome:
        content, tag = resolved.content, resolved.img_tag
        if content is None or tag is None:
            raise SinkError(f"No content location recorded for {resolved.ref.image_id}")

        try:
            body = replace_img_src(content.body, tag, to_data_uri(output.data, output.format))
        except ValueError as e:
            raise SinkError(str(e)) from e

        self._contents.update_body(content.id, body, expected_version=content.version)
        return SinkOutcome("Processed and updated in database", DESTINATION_CONTENT, published=True)

    def record_audit(
        self,
        image_id: str,
        website_id: Optional[str],
        options: ProcessOptions,
        success: bool,
        error: Optional[str] = None,
    ) -> None:
        """Upsert the status entry; failures here are logged, never raised."""
        entry = MetadataAuditRecord(
            image_id=image_id,
            website_id=website_id,
            action=options.action,
            has_metadata=options.writes_metadata,
            copyright=options.copyright,
            author=options.author,
            processed=success,
            error=error,
        )
        try:
            self._audit_log.record(entry)
        except Exception as e:  # noqa: BLE001
            logger.error(f"Failed to record metadata update for {image_id}: {e}", exc_info=True)
