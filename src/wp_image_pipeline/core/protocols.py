"""Protocol definitions for dependency injection and testability."""

from typing import Any, Dict, List, Optional, Protocol

from .models import ContentRecord, MetadataAuditRecord, WebsiteRecord


class HttpResponseProtocol(Protocol):
    """The slice of ``requests.Response`` the pipeline reads."""

    status_code: int
    reason: str
    content: bytes
    headers: Any

    @property
    def ok(self) -> bool:
        ...

    def json(self) -> Any:
        ...


class HttpSessionProtocol(Protocol):
    """Protocol for HTTP session operations (``requests.Session`` compatible)."""

    def get(self, url: str, **kwargs: Any) -> HttpResponseProtocol:
        """Issue a GET request."""
        ...

    def post(self, url: str, **kwargs: Any) -> HttpResponseProtocol:
        """Issue a POST request."""
        ...


class WebsiteStore(Protocol):
    """Website-configuration datastore."""

    def get_for_user(self, user_id: str, website_id: str) -> Optional[WebsiteRecord]:
        """Return the website if it exists and belongs to the user."""
        ...

    def list_for_user(self, user_id: str) -> List[WebsiteRecord]:
        """Return every website the user has connected."""
        ...


class ContentStore(Protocol):
    """Content datastore accessed by record id."""

    def get(self, content_id: str) -> Optional[ContentRecord]:
        """Return the content record, or None."""
        ...

    def list(self, website_id: Optional[str] = None) -> List[ContentRecord]:
        """Return content records, optionally for one website."""
        ...

    def update_body(
        self, content_id: str, body: str, expected_version: int
    ) -> ContentRecord:
        """Persist a new body if the record is still at ``expected_version``."""
        ...


class AuditLog(Protocol):
    """Image metadata status table."""

    def record(self, entry: MetadataAuditRecord) -> None:
        """Insert or replace the entry for ``entry.image_id``."""
        ...

    def list(self, website_id: Optional[str] = None) -> List[MetadataAuditRecord]:
        """Return entries newest first, optionally for one website."""
        ...


class LoggerProtocol(Protocol):
    """Protocol for logging operations."""

    def debug(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log debug message."""
        ...

    def info(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log info message."""
        ...

    def warning(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log warning message."""
        ...

    def error(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log error message."""
        ...


JsonDict = Dict[str, Any]
