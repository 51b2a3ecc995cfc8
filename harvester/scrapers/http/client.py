"""
Harvester - Generic HTTP Scraper

Implements the scraper interface against a JSON-over-HTTP source:
- optional form login
- paginated item listing ({"items": [...], "next": "<url>"})
- per-item detail fetch
- streamed attachment download

HTTP and transport failures are mapped onto the typed error taxonomy so the
orchestration engine can decide what to retry.
"""

from pathlib import Path
from typing import Any
from urllib.parse import urljoin

import httpx

from harvester.scrapers.base import AttachmentResult, BaseScraper, DetailRecord, WorkItem
from harvester.shared.config import ScraperSettings, settings
from harvester.shared.exceptions import (
    AuthenticationError,
    DownloadError,
    NavigationError,
    ParsingError,
    RateLimitError,
    ScraperTimeoutError,
    SecurityCheckError,
)

# Markers the source uses when it puts a verification wall in front of us
CHALLENGE_MARKERS = ("captcha", "challenge", "checkpoint", "verify you are human")


class HttpScraper(BaseScraper):
    """
    Scraper for sources exposing a JSON listing and detail API.

    Usage:
        async with HttpScraper() as scraper:
            if not await scraper.ensure_logged_in():
                await scraper.login()
            items = await scraper.list_work_items("job-42")
    """

    name = "http"

    def __init__(
        self,
        config: ScraperSettings | None = None,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or settings.scraper
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._logged_in = False

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-initialized HTTP client (one session per scraper)."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                headers=self._get_default_headers(),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def _get_default_headers(self) -> dict[str, str]:
        return {
            "User-Agent": self.config.user_agent,
            "Accept": "application/json, text/html;q=0.9, */*;q=0.8",
        }

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Make an HTTP request and translate failures into scraper errors.

        Raises:
            AuthenticationError: 401, or 403 without a challenge marker
            SecurityCheckError: challenge page or challenge redirect
            RateLimitError: 429
            NavigationError: 5xx, other 4xx, or transport failure
            ScraperTimeoutError: request timed out
        """
        self.logger.debug("Making request", method=method, url=url)

        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise ScraperTimeoutError(f"Request timed out: {url}") from e
        except httpx.TransportError as e:
            raise NavigationError(f"Could not load {url}: {e}") from e

        if self._is_challenge(response):
            raise SecurityCheckError(
                "Security verification required by source",
                details={"url": str(response.url)},
            )

        if response.status_code == 401:
            self._logged_in = False
            raise AuthenticationError("Session is not authenticated", details={"url": url})

        if response.status_code == 403:
            self._logged_in = False
            raise AuthenticationError("Access denied by source", details={"url": url})

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                self.config.base_url,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )

        if response.status_code >= 400:
            self.logger.warning("HTTP error", status_code=response.status_code, url=url)
            raise NavigationError(
                f"Page load failed with HTTP {response.status_code}",
                details={"url": url, "status_code": response.status_code},
            )

        return response

    @staticmethod
    def _is_challenge(response: httpx.Response) -> bool:
        path = response.url.path.lower()
        if any(marker in path for marker in CHALLENGE_MARKERS):
            return True
        if response.status_code == 403:
            body = response.text.lower()
            return any(marker in body for marker in CHALLENGE_MARKERS)
        return False

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise ParsingError(f"Could not parse response from {response.url}") from e

    async def login(self) -> None:
        """Submit credentials to the login form, if one is configured."""
        if not self.config.login_path:
            self._logged_in = True
            return

        if not self.config.username or self.config.password is None:
            raise AuthenticationError("Login required but no credentials configured")

        self.logger.info("Logging in", username=self.config.username)
        await self._request(
            "POST",
            self.config.login_path,
            data={
                "username": self.config.username,
                "password": self.config.password.get_secret_value(),
            },
        )
        self._logged_in = True

    async def ensure_logged_in(self) -> bool:
        if not self.config.login_path:
            return True
        return self._logged_in

    async def list_work_items(self, source_id: str) -> list[WorkItem]:
        """Follow the listing's "next" links until the source runs out of pages."""
        url: str | None = self.config.list_path.format(source_id=source_id)
        items: list[WorkItem] = []
        page = 1

        while url:
            response = await self._request("GET", url)
            payload = self._json(response)
            if not isinstance(payload, dict) or not isinstance(payload.get("items"), list):
                raise ParsingError(f"Unexpected listing format on page {page}")

            for raw in payload["items"]:
                items.append(self._parse_item(raw))

            self.logger.debug("Listed page", page=page, count=len(payload["items"]))
            next_url = payload.get("next")
            url = urljoin(str(response.url), next_url) if next_url else None
            page += 1

        self.logger.info("Listing complete", source_id=source_id, count=len(items), pages=page - 1)
        return items

    @staticmethod
    def _parse_item(raw: Any) -> WorkItem:
        if not isinstance(raw, dict) or "id" not in raw:
            raise ParsingError("Listing entry without an id")
        metadata = {k: v for k, v in raw.items() if k not in ("id", "url", "name")}
        return WorkItem(
            id=str(raw["id"]),
            url=raw.get("url"),
            label=raw.get("name"),
            metadata=metadata,
        )

    async def fetch_detail(self, item: WorkItem) -> DetailRecord:
        url = item.url or f"/items/{item.id}"
        response = await self._request("GET", url)
        data = self._json(response)
        if not isinstance(data, dict):
            raise ParsingError(f"Unexpected detail format for item {item.id}")
        return DetailRecord(item_id=item.id, url=str(response.url), data=data)

    async def download_attachment(self, item: WorkItem, dest_path: str | Path) -> AttachmentResult:
        """Stream the item's attachment_url (from listing metadata) to dest_path."""
        attachment_url = item.metadata.get("attachment_url")
        if not attachment_url:
            return AttachmentResult(item_id=item.id, path=None, size_bytes=0, success=False)

        dest = Path(dest_path)
        dest.parent.mkdir(parents=True, exist_ok=True)

        size = 0
        partial = False
        try:
            async with self.client.stream("GET", attachment_url) as response:
                if response.status_code >= 400:
                    raise DownloadError(
                        f"Download failed with HTTP {response.status_code}",
                        details={"url": attachment_url},
                    )
                partial = True
                with open(dest, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        f.write(chunk)
                        size += len(chunk)
                partial = False
        except httpx.TimeoutException as e:
            raise ScraperTimeoutError(f"Download timed out: {attachment_url}") from e
        except httpx.TransportError as e:
            raise DownloadError(f"Download failed: {e}") from e
        finally:
            # Interrupted streams, including cancellation by a call timeout
            if partial:
                dest.unlink(missing_ok=True)
                self.logger.warning("Removed partial attachment", item_id=item.id, path=str(dest))

        self.logger.info("Attachment downloaded", item_id=item.id, path=str(dest), size_bytes=size)
        return AttachmentResult(item_id=item.id, path=str(dest), size_bytes=size, success=True)
