"""
HTTP client for betting-house conversion APIs.

Every call has an explicit timeout, and transient failures are retried with
backoff (see core.retry). Failures reach callers as UpstreamApiError.
"""
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..config import settings
from ..core.exceptions import UpstreamApiError
from ..core.retry import retry_with_backoff
from ..schemas.integration_config import ApiSettings


class HouseApiClient:
    def __init__(
        self,
        api: ApiSettings,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        retry_initial_delay: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api = api
        self.timeout = timeout if timeout is not None else settings.house_api_timeout_s
        self.max_attempts = max_attempts if max_attempts is not None else settings.house_api_max_attempts
        self.retry_initial_delay = (
            retry_initial_delay if retry_initial_delay is not None else settings.house_api_retry_initial_delay_s
        )
        self.transport = transport

    def auth_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json", **self.api.extra_headers}
        if self.api.auth_type == "bearer":
            headers["Authorization"] = f"Bearer {self.api.api_key}"
            if self.api.send_key_header:
                headers["X-API-Key"] = self.api.api_key
        elif self.api.auth_type == "apikey":
            headers["X-API-Key"] = self.api.api_key
        return headers

    def _auth(self) -> Optional[httpx.Auth]:
        if self.api.auth_type == "basic":
            return httpx.BasicAuth(self.api.api_key, self.api.api_secret or "")
        return None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.api.base_url,
            headers=self.auth_headers(),
            auth=self._auth(),
            timeout=self.timeout,
            transport=self.transport,
        )

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        async with self._client() as client:
            async def attempt() -> httpx.Response:
                response = await client.get(path, params=params)
                response.raise_for_status()
                return response

            try:
                return await retry_with_backoff(
                    attempt,
                    max_attempts=self.max_attempts,
                    initial_delay=self.retry_initial_delay,
                )
            except httpx.TimeoutException as e:
                raise UpstreamApiError(f"House API timed out after {self.timeout}s ({path})") from e
            except httpx.HTTPStatusError as e:
                raise UpstreamApiError(
                    f"House API returned HTTP {e.response.status_code} for {path}"
                ) from e
            except httpx.HTTPError as e:
                raise UpstreamApiError(f"Could not reach house API at {self.api.base_url}: {e}") from e

    async def fetch_conversions(self, date_from: date, date_to: date, limit: Optional[int] = None) -> List[Any]:
        """Conversion records between the two dates, as the house returns them."""
        params = {
            "date_from": date_from.isoformat(),
            "date_to": date_to.isoformat(),
            "limit": limit or self.api.page_limit or settings.sync_page_limit,
        }
        response = await self._get(self.api.conversions_endpoint, params=params)

        try:
            payload = response.json()
        except ValueError as e:
            content_type = response.headers.get("content-type", "unknown")
            raise UpstreamApiError(
                f"House API returned a non-JSON response (content-type: {content_type})"
            ) from e

        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict) and isinstance(payload.get(self.api.records_key), list):
            return payload[self.api.records_key]
        raise UpstreamApiError(f"House API response has no '{self.api.records_key}' list")

    async def check_health(self) -> Tuple[bool, str]:
        try:
            response = await self._get(self.api.health_endpoint)
        except UpstreamApiError as e:
            return False, str(e)
        return True, f"Connection successful (HTTP {response.status_code})"
