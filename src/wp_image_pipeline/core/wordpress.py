"""HTTP access to WordPress REST endpoints and remote image hosts."""

from typing import Any, Dict, List, Optional

from requests.auth import HTTPBasicAuth

from .error_handling import (
    RETRYABLE_HTTP_STATUS_CODES,
    RetryableHTTPError,
    retry_http_operation,
    with_error_handling,
)
from .exceptions import SinkError, SourceNotFoundError
from .logging_config import get_logger
from .models import PipelineSettings, ProcessOptions, WebsiteRecord
from .protocols import HttpResponseProtocol, HttpSessionProtocol

logger = get_logger("wordpress")


def _describe(response: HttpResponseProtocol) -> str:
    reason = getattr(response, "reason", "") or ""
    return f"{response.status_code} {reason}".strip()


class HttpFetcher:
    """Timeout- and retry-aware GET/POST on top of an injected session."""

    def __init__(self, session: HttpSessionProtocol, settings: PipelineSettings):
        self._session = session
        self._timeout = settings.http_timeout
        self._send = retry_http_operation(
            max_attempts=settings.http_max_attempts,
            initial_delay=settings.http_retry_delay,
        )(self._send_once)

    @with_error_handling
    def _send_once(self, method: str, url: str, **kwargs: Any) -> HttpResponseProtocol:
        call = self._session.get if method == "GET" else self._session.post
        response = call(url, timeout=self._timeout, **kwargs)
        if response.status_code in RETRYABLE_HTTP_STATUS_CODES:
            raise RetryableHTTPError(
                f"{method} {url} returned {_describe(response)}", response.status_code
            )
        return response

    def get(self, url: str, **kwargs: Any) -> HttpResponseProtocol:
        return self._send("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> HttpResponseProtocol:
        return self._send("POST", url, **kwargs)

    def download(self, url: str, **kwargs: Any) -> bytes:
        """Download raw bytes.

        Raises:
            SourceNotFoundError: On a non-2xx status, an empty body or a failed request.
        """
        logger.debug(f"Downloading image from {url[:120]}")
        response = self.get(url, **kwargs)
        if not response.ok:
            raise SourceNotFoundError(f"Failed to download image: {_describe(response)}")
        if not response.content:
            raise SourceNotFoundError(f"Downloaded image is empty: {url}")
        return response.content


def featured_media(post: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """The embedded featured-media object of a post fetched with ``_embed``."""
    embedded = (post.get("_embedded") or {}).get("wp:featuredmedia") or []
    if embedded and isinstance(embedded[0], dict) and embedded[0].get("source_url"):
        return embedded[0]
    return None


def _json_body(response: HttpResponseProtocol) -> Any:
    try:
        return response.json()
    except ValueError as e:
        # WordPress behind a login wall or error page answers 200 with HTML
        raise SourceNotFoundError(f"Response is not JSON ({_describe(response)})") from e


def media_source_url(media: Dict[str, Any]) -> Optional[str]:
    return media.get("source_url") or (media.get("guid") or {}).get("rendered")


class WordPressClient:
    """Client for one website's ``/wp-json/wp/v2`` API."""

    def __init__(
        self,
        website: WebsiteRecord,
        fetcher: HttpFetcher,
        default_username: str = "admin",
    ):
        self._website = website
        self._fetcher = fetcher
        self._api = f"{website.base_url}/wp-json/wp/v2"
        self._auth = None
        if website.has_credentials:
            username = (
                website.wp_username or website.wp_application_name or default_username
            )
            self._auth = HTTPBasicAuth(username, website.wp_application_password)

    @property
    def has_credentials(self) -> bool:
        return self._auth is not None

    def _get_json(self, url: str, what: str, expected: type = dict, **kwargs: Any) -> Any:
        response = self._fetcher.get(url, auth=self._auth, **kwargs)
        if response.status_code == 404:
            raise SourceNotFoundError(f"{what} not found on website {self._website.id}")
        if not response.ok:
            raise SourceNotFoundError(f"Failed to fetch {what.lower()}: {_describe(response)}")
        payload = _json_body(response)
        if not isinstance(payload, expected):
            raise SourceNotFoundError(
                f"Failed to fetch {what.lower()}: unexpected response from website "
                f"{self._website.id}"
            )
        return payload

    def get_media(self, media_id: str) -> Dict[str, Any]:
        return self._get_json(f"{self._api}/media/{media_id}", f"Media {media_id}")

    def get_post(self, post_id: str) -> Dict[str, Any]:
        return self._get_json(
            f"{self._api}/posts/{post_id}", f"Post {post_id}", params={"_embed": "1"}
        )

    def list_media(self, per_page: int = 100) -> List[Dict[str, Any]]:
        return self._get_json(
            f"{self._api}/media", "Media library", list, params={"per_page": per_page}
        )

    def list_posts(self, per_page: int = 20) -> List[Dict[str, Any]]:
        return self._get_json(
            f"{self._api}/posts",
            "Posts",
            list,
            params={"_embed": "1", "per_page": per_page},
        )

    def download(self, url: str) -> bytes:
        return self._fetcher.download(url)

    def replace_media(
        self,
        media_id: str,
        data: bytes,
        mime_type: str,
        extension: str,
        options: ProcessOptions,
    ) -> Optional[str]:
        """Upload processed bytes over an existing attachment.

        Returns:
            The attachment's new source URL, if WordPress reports one.

        Raises:
            SinkError: If the site has no credentials or rejects the upload.
        """
        if not self.has_credentials:
            raise SinkError(f"Website {self._website.id} has no WordPress credentials")

        url = f"{self._api}/media/{media_id}"
        try:
            current = self.get_media(media_id)
        except SourceNotFoundError as e:
            raise SinkError(f"Failed to fetch media item: {e}") from e

        fields: Dict[str, str] = {"alt_text": current.get("alt_text") or ""}
        if options.copyright:
            fields["caption"] = options.copyright
        if options.author:
            fields["description"] = f"Processed by {options.author}"

        slug = current.get("slug") or f"media-{media_id}"
        filename = f"{slug}_processed.{extension}"
        try:
            response = self._fetcher.post(
                url,
                auth=self._auth,
                files={"file": (filename, data, mime_type)},
                data=fields,
            )
        except SourceNotFoundError as e:
            raise SinkError(f"Failed to update media: {e}") from e

        if not response.ok:
            raise SinkError(f"Failed to update media: {_describe(response)}")
        try:
            updated = _json_body(response)
        except SourceNotFoundError as e:
            raise SinkError(f"Failed to update media: {e}") from e
        return media_source_url(updated) if isinstance(updated, dict) else None
