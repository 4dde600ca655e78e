"""Async TestRail API v2 client covering the endpoints the bridge consumes."""

from __future__ import annotations

import logging
import time
from typing import Any, Optional
from urllib.parse import quote, urlencode

import httpx
from pydantic import ValidationError

from testrail_sync.errors import (
    TestRailAPIError,
    TestRailConnectionError,
    TestRailTimeoutError,
)
from testrail_sync.models.config import BridgeConfig
from testrail_sync.models.remote import (
    CasePayload,
    RemoteCase,
    RemoteRun,
    RemoteTest,
    RunPayload,
)

logger = logging.getLogger(__name__)

USER_AGENT = "testrail-sync/0.1.0"


class TestRailClient:
    """Thin wrapper around ``httpx.AsyncClient`` for the TestRail API.

    TestRail routes every call through the query string
    (``index.php?/api/v2/<endpoint>``), so URLs are assembled by hand
    rather than through httpx ``params``.
    """

    __test__ = False

    def __init__(
        self,
        config: BridgeConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.api_root = f"{config.base_url}/index.php?/api/v2/"
        self._http = httpx.AsyncClient(
            auth=(config.username, config.api_key),
            timeout=httpx.Timeout(config.timeout_seconds),
            headers={"Content-Type": "application/json", "User-Agent": USER_AGENT},
            transport=transport,
        )
        self._request_count = 0

    async def __aenter__(self) -> "TestRailClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    @property
    def request_count(self) -> int:
        return self._request_count

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def build_url(self, endpoint: str, params: Optional[dict[str, Any]] = None) -> str:
        url = self.api_root + endpoint
        query = {k: v for k, v in (params or {}).items() if v is not None}
        if query:
            url += "&" + urlencode(query)
        return url

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
    ) -> Any:
        url = self.build_url(endpoint, params)
        self._request_count += 1
        logger.debug("TestRail request #%d: %s %s", self._request_count, method, endpoint)

        start = time.time()
        try:
            response = await self._http.request(method, url, json=json)
        except httpx.TimeoutException as e:
            logger.warning("TestRail request timed out: %s %s", method, endpoint)
            raise TestRailTimeoutError(f"Request to {endpoint} timed out") from e
        except httpx.TransportError as e:
            logger.error("TestRail unreachable: %s", e)
            raise TestRailConnectionError(
                f"Network error - unable to reach TestRail server: {e}"
            ) from e

        logger.debug("TestRail response: %d %s (%.2fs)",
                     response.status_code, endpoint, time.time() - start)

        if response.status_code in (401, 403):
            raise TestRailConnectionError(
                f"Authentication failed ({response.status_code}): {_error_text(response)}"
            )
        if response.is_error:
            message = _error_text(response)
            logger.error("TestRail API error %d on %s: %s",
                         response.status_code, endpoint, message)
            raise TestRailAPIError(message, status_code=response.status_code,
                                   details=response.text)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise TestRailAPIError(
                f"Invalid JSON from {endpoint}", status_code=response.status_code
            ) from e

    async def _get(self, endpoint: str, params: Optional[dict[str, Any]] = None) -> Any:
        return await self._request("GET", endpoint, params=params)

    async def _post(self, endpoint: str, data: Any = None) -> Any:
        return await self._request("POST", endpoint, json=data if data is not None else {})

    # ------------------------------------------------------------------
    # Cases
    # ------------------------------------------------------------------

    async def get_cases(
        self,
        project_id: int,
        suite_id: Optional[int] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[RemoteCase]:
        data = await self._get(
            f"get_cases/{project_id}",
            {"suite_id": suite_id, "limit": limit, "offset": offset},
        )
        return _parse_list(data, "cases", RemoteCase)

    async def add_case(self, section_id: int, payload: CasePayload) -> RemoteCase:
        data = await self._post(f"add_case/{section_id}", payload.to_api())
        return _parse_one(data, RemoteCase)

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def get_run(self, run_id: int) -> RemoteRun:
        return _parse_one(await self._get(f"get_run/{run_id}"), RemoteRun)

    async def get_runs(
        self,
        project_id: int,
        created_after: Optional[int] = None,
        created_before: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> list[RemoteRun]:
        data = await self._get(
            f"get_runs/{project_id}",
            {"created_after": created_after, "created_before": created_before,
             "limit": limit},
        )
        return _parse_list(data, "runs", RemoteRun)

    async def add_run(self, project_id: int, payload: RunPayload) -> RemoteRun:
        data = await self._post(f"add_run/{project_id}", payload.to_api())
        return _parse_one(data, RemoteRun)

    async def close_run(self, run_id: int) -> RemoteRun:
        return _parse_one(await self._post(f"close_run/{run_id}"), RemoteRun)

    # ------------------------------------------------------------------
    # Tests and results
    # ------------------------------------------------------------------

    async def get_tests(self, run_id: int) -> list[RemoteTest]:
        return _parse_list(await self._get(f"get_tests/{run_id}"), "tests", RemoteTest)

    async def add_results(self, run_id: int, results: list[dict[str, Any]]) -> list[dict]:
        """Bulk-add results addressed by test id."""
        data = await self._post(f"add_results/{run_id}", {"results": results})
        return data or []

    async def add_results_for_cases(
        self, run_id: int, results: list[dict[str, Any]]
    ) -> list[dict]:
        """Bulk-add results addressed by case id."""
        data = await self._post(f"add_results_for_cases/{run_id}", {"results": results})
        return data or []

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def get_user_by_email(self, email: str) -> dict[str, Any]:
        return await self._get(f"get_user_by_email&email={quote(email)}")


def _error_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.reason_phrase or f"HTTP {response.status_code}"


def _parse_one(data: Any, model):
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise TestRailAPIError(f"Unexpected {model.__name__} payload: {e}") from e


def _parse_list(data: Any, key: str, model) -> list:
    # TestRail 6.7+ wraps list endpoints as {"offset", "limit", "size", "_links", key: [...]}
    if isinstance(data, dict):
        data = data.get(key)
    if not isinstance(data, list):
        raise TestRailAPIError(f"Unexpected response shape for {key}")
    return [_parse_one(item, model) for item in data]
