import asyncio
import os
from typing import Any, Callable, Optional, Union

import aiohttp
from loguru import logger
from contentgem_client.exceptions import APIError, RequestError
from contentgem_client.models import (
    BULK_GENERATION,
    DEFAULT_BASE_URL,
    SINGLE_GENERATION,
    ClientConfig,
    JobKind,
    PollConfig,
    StatusCheck,
)
from contentgem_client.poller import JobPoller, StatusFetcher

DOWNLOAD_FORMATS = ("pdf", "docx", "html", "markdown")


class ContentGemClient:
    """Async client for the ContentGem content generation API.

    Use it as an async context manager, or call ``close()`` when done::

        async with ContentGemClient(api_key="cg_...") as client:
            started = await client.generate_publication("Write about AI in business")
            result = await client.wait_for_generation(started["data"]["sessionId"])
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        config: Optional[ClientConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        if config is None:
            settings: dict[str, Any] = {"base_url": base_url, "timeout": timeout}
            # Without an explicit key, CONTENTGEM_API_KEY is used
            if api_key is not None:
                settings["api_key"] = api_key
            config = ClientConfig(**settings)
        self.config = config
        self.logger = logger
        self._session = session
        self._owns_session = session is None
        self._headers = {
            "X-API-Key": self.config.api_key,
            "Accept": "application/json",
        }
        self._timeout = aiohttp.ClientTimeout(total=self.config.timeout)

    async def __aenter__(self) -> "ContentGemClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json: Optional[Any] = None,
        data: Optional[aiohttp.FormData] = None,
    ) -> dict:
        """Sends one request and returns the decoded JSON envelope"""
        url = f"{self.config.base_url}{endpoint}"
        session = self._get_session()
        self.logger.debug(f"{method} {url}")

        try:
            async with session.request(
                method,
                url,
                params=params,
                json=json,
                data=data,
                headers=self._headers,
                timeout=self._timeout,
            ) as response:
                try:
                    payload = await response.json(content_type=None)
                except ValueError:
                    payload = None

                if response.status >= 400:
                    message = None
                    if isinstance(payload, dict):
                        message = payload.get("message") or payload.get("error")
                    message = message or response.reason or f"HTTP {response.status}"
                    self.logger.error(f"HTTP error {response.status} at {url}: {message}")
                    raise APIError(message, status_code=response.status, payload=payload)

                if not isinstance(payload, dict):
                    self.logger.error(f"Unexpected response body at {url}")
                    raise APIError(
                        "Invalid JSON response", status_code=response.status
                    )
                return payload
        except asyncio.TimeoutError as e:
            # Also covers aiohttp.ServerTimeoutError
            self.logger.error(f"Request to {url} timed out after {self.config.timeout}s")
            raise RequestError(f"timed out after {self.config.timeout}s") from e
        except aiohttp.ClientError as e:
            self.logger.error(f"Request to {url} failed: {e}")
            raise RequestError(str(e) or type(e).__name__) from e

    # Publications

    async def get_publications(
        self,
        page: int = 1,
        limit: int = 10,
        type: Optional[str] = None,
        status: Optional[str] = None,
    ) -> dict:
        """Lists publications, optionally filtered by type (blog, review) and status"""
        params: dict[str, Any] = {"page": page, "limit": limit}
        if type is not None:
            params["type"] = type
        if status is not None:
            params["status"] = status
        return await self._request("GET", "/publications", params=params)

    async def get_publication(self, publication_id: str) -> dict:
        return await self._request("GET", f"/publications/{publication_id}")

    async def create_publication(self, data: dict) -> dict:
        return await self._request("POST", "/publications", json=data)

    async def update_publication(self, publication_id: str, data: dict) -> dict:
        return await self._request("PUT", f"/publications/{publication_id}", json=data)

    async def delete_publication(self, publication_id: str) -> dict:
        return await self._request("DELETE", f"/publications/{publication_id}")

    async def publish_publication(self, publication_id: str) -> dict:
        return await self._request("POST", f"/publications/{publication_id}/publish")

    async def archive_publication(self, publication_id: str) -> dict:
        return await self._request("POST", f"/publications/{publication_id}/archive")

    async def download_publication(self, publication_id: str, format: str = "pdf") -> dict:
        if format not in DOWNLOAD_FORMATS:
            raise ValueError(
                f"Unsupported download format {format!r}, expected one of {DOWNLOAD_FORMATS}"
            )
        return await self._request(
            "POST", f"/publications/{publication_id}/download", json={"format": format}
        )

    async def get_publication_images(
        self, publication_id: str, page: int = 1, limit: int = 10
    ) -> dict:
        return await self._request(
            "GET",
            f"/publications/{publication_id}/images",
            params={"page": page, "limit": limit},
        )

    # Generation

    async def generate_publication(
        self,
        prompt: str,
        company_info: Optional[dict] = None,
        keywords: Optional[list] = None,
    ) -> dict:
        """Starts generating a publication; the response carries the ``sessionId`` to poll"""
        request_data: dict[str, Any] = {"prompt": prompt}
        if company_info:
            request_data["company_info"] = company_info
        if keywords:
            request_data["keywords"] = keywords
        return await self._request("POST", "/publications/generate", json=request_data)

    async def check_generation_status(self, session_id: str) -> dict:
        return await self._request("GET", f"/publications/generation-status/{session_id}")

    async def check_publication_generation_status(self, publication_id: str) -> dict:
        return await self._request(
            "GET", f"/publications/publication-status/{publication_id}"
        )

    async def bulk_generate_publications(
        self,
        prompts: list,
        company_info: Optional[dict] = None,
        common_settings: Optional[dict] = None,
    ) -> dict:
        """Starts a bulk generation; the response carries the ``bulk_session_id`` to poll"""
        common_settings = common_settings or {}
        request_data = {
            "prompts": prompts,
            "settings": {
                "company_info": company_info or {},
                "keywords": common_settings.get("keywords", []),
            },
        }
        return await self._request("POST", "/publications/bulk-generate", json=request_data)

    async def check_bulk_generation_status(self, bulk_session_id: str) -> dict:
        return await self._request("GET", f"/publications/bulk-status/{bulk_session_id}")

    async def _wait(
        self,
        handle: str,
        fetch_status: StatusFetcher,
        job_kind: JobKind,
        max_attempts: Optional[int],
        delay: Optional[float],
        pending_on_unsuccessful: bool,
        on_status_change: Optional[Callable[[StatusCheck], Any]],
        cancel_event: Optional[asyncio.Event],
    ) -> dict:
        defaults = job_kind.default_config
        config = PollConfig(
            max_attempts=defaults.max_attempts if max_attempts is None else max_attempts,
            delay=defaults.delay if delay is None else delay,
            pending_on_unsuccessful=pending_on_unsuccessful,
        )
        poller = JobPoller(
            fetch_status,
            job_kind,
            config=config,
            on_status_change=on_status_change,
        )
        return await poller.wait_for(handle, cancel_event=cancel_event)

    async def wait_for_generation(
        self,
        session_id: str,
        max_attempts: Optional[int] = None,
        delay: Optional[float] = None,
        on_status_change: Optional[Callable[[StatusCheck], Any]] = None,
        cancel_event: Optional[asyncio.Event] = None,
        pending_on_unsuccessful: bool = True,
    ) -> dict:
        """Polls a single generation until it completes.

        ``max_attempts`` and ``delay`` default to 60 checks 5 seconds apart.
        Raises ``JobFailedError`` when the generation reports ``failed`` and
        ``JobTimeoutError`` when ``max_attempts`` checks pass without a
        terminal status.
        """
        return await self._wait(
            session_id,
            self.check_generation_status,
            SINGLE_GENERATION,
            max_attempts,
            delay,
            pending_on_unsuccessful,
            on_status_change,
            cancel_event,
        )

    async def wait_for_bulk_generation(
        self,
        bulk_session_id: str,
        max_attempts: Optional[int] = None,
        delay: Optional[float] = None,
        on_status_change: Optional[Callable[[StatusCheck], Any]] = None,
        cancel_event: Optional[asyncio.Event] = None,
        pending_on_unsuccessful: bool = True,
    ) -> dict:
        """Polls a bulk generation until every prompt is processed (120 checks 10 seconds apart by default)"""
        return await self._wait(
            bulk_session_id,
            self.check_bulk_generation_status,
            BULK_GENERATION,
            max_attempts,
            delay,
            pending_on_unsuccessful,
            on_status_change,
            cancel_event,
        )

    # Images

    async def get_images(
        self,
        page: int = 1,
        limit: int = 10,
        publication_id: Optional[str] = None,
        search: Optional[str] = None,
    ) -> dict:
        params: dict[str, Any] = {"page": page, "limit": limit}
        if publication_id is not None:
            params["publicationId"] = publication_id
        if search is not None:
            params["search"] = search
        return await self._request("GET", "/images", params=params)

    async def get_image(self, image_id: str) -> dict:
        return await self._request("GET", f"/images/{image_id}")

    async def upload_image(
        self, file_path: str, publication_id: Optional[str] = None
    ) -> dict:
        if not os.path.isfile(file_path):
            raise FileNotFoundError(f"Image file not found: {file_path}")

        with open(file_path, "rb") as image_file:
            form = aiohttp.FormData()
            form.add_field(
                "image", image_file, filename=os.path.basename(file_path)
            )
            if publication_id:
                form.add_field("publicationId", publication_id)
            return await self._request("POST", "/images/upload", data=form)

    async def generate_image(
        self,
        prompt: str,
        style: str = "realistic",
        size: str = "1024x1024",
        publication_id: Optional[str] = None,
    ) -> dict:
        request_data = {"prompt": prompt, "style": style, "size": size}
        if publication_id:
            request_data["publicationId"] = publication_id
        return await self._request("POST", "/images/generate", json=request_data)

    async def update_image(self, image_id: str, data: dict) -> dict:
        return await self._request("PUT", f"/images/{image_id}", json=data)

    async def delete_image(self, image_id: str) -> dict:
        return await self._request("DELETE", f"/images/{image_id}")

    # Company

    async def get_company_info(self) -> dict:
        return await self._request("GET", "/company")

    async def update_company_info(self, company_data: dict) -> dict:
        return await self._request("PUT", "/company", json=company_data)

    async def parse_company_website(self, urls: Union[str, list]) -> dict:
        if isinstance(urls, str):
            urls = [urls]
        return await self._request("POST", "/company/parse", json={"urls": urls})

    async def get_company_parsing_status(self) -> dict:
        return await self._request("GET", "/company/parsing-status")

    # Subscription

    async def get_subscription_status(self) -> dict:
        return await self._request("GET", "/subscription/status")

    async def get_subscription_limits(self) -> dict:
        return await self._request("GET", "/subscription/limits")

    async def get_subscription_plans(self) -> dict:
        return await self._request("GET", "/subscription/plans")

    # Statistics

    async def get_statistics_overview(self) -> dict:
        return await self._request("GET", "/statistics/overview")

    async def get_publication_statistics(self) -> dict:
        return await self._request("GET", "/statistics/publications")

    async def get_image_statistics(self) -> dict:
        return await self._request("GET", "/statistics/images")

    async def health_check(self) -> dict:
        return await self._request("GET", "/health")
