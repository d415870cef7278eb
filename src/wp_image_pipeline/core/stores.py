"""In-process implementations of the website, content and audit stores."""

import threading
from typing import Dict, Iterable, List, Optional

from .exceptions import ConcurrentUpdateError, SinkError
from .models import ContentRecord, MetadataAuditRecord, WebsiteRecord, utcnow


class InMemoryWebsiteStore:
    """Website configurations keyed by id."""

    def __init__(self, websites: Iterable[WebsiteRecord] = ()):
        self._websites: Dict[str, WebsiteRecord] = {w.id: w for w in websites}

    def add(self, website: WebsiteRecord) -> None:
        self._websites[website.id] = website

    def get_for_user(self, user_id: str, website_id: str) -> Optional[WebsiteRecord]:
        website = self._websites.get(website_id)
        if website is None or website.user_id != user_id:
            return None
        return website

    def list_for_user(self, user_id: str) -> List[WebsiteRecord]:
        return [w for w in self._websites.values() if w.user_id == user_id]


class InMemoryContentStore:
    """Content records with a version counter bumped on every body update."""

    def __init__(self, contents: Iterable[ContentRecord] = ()):
        self._contents: Dict[str, ContentRecord] = {c.id: c for c in contents}
        self._lock = threading.Lock()

    def add(self, content: ContentRecord) -> None:
        with self._lock:
            self._contents[content.id] = content

    def get(self, content_id: str) -> Optional[ContentRecord]:
        with self._lock:
            record = self._contents.get(content_id)
            return record.model_copy() if record else None

    def list(self, website_id: Optional[str] = None) -> List[ContentRecord]:
        with self._lock:
            return [
                c.model_copy()
                for c in self._contents.values()
                if website_id is None or c.website_id == website_id
            ]

    def update_body(
        self, content_id: str, body: str, expected_version: int
    ) -> ContentRecord:
        """
        Replace the body if nobody else wrote since ``expected_version``.

        Raises:
            SinkError: If the record disappeared.
            ConcurrentUpdateError: If the stored version moved on.
        """
        with self._lock:
            current = self._contents.get(content_id)
            if current is None:
                raise SinkError(f"Content not found: {content_id}")
            if current.version != expected_version:
                raise ConcurrentUpdateError(content_id, expected_version, current.version)
            updated = current.model_copy(
                update={"body": body, "version": current.version + 1, "updated_at": utcnow()}
            )
            self._contents[content_id] = updated
            return updated.model_copy()


class InMemoryAuditLog:
    """Image metadata status entries, one per image id."""

    def __init__(self):
        self._entries: Dict[str, MetadataAuditRecord] = {}
        self._lock = threading.Lock()

    def record(self, entry: MetadataAuditRecord) -> None:
        with self._lock:
            self._entries[entry.image_id] = entry

    def get(self, image_id: str) -> Optional[MetadataAuditRecord]:
        with self._lock:
            return self._entries.get(image_id)

    def list(self, website_id: Optional[str] = None) -> List[MetadataAuditRecord]:
        with self._lock:
            entries = [
                e
                for e in self._entries.values()
                if website_id is None or e.website_id == website_id
            ]
        return sorted(entries, key=lambda e: e.processed_at, reverse=True)
