"""Async HTTP client for the Qualys VM, Asset Management and WAS APIs."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Iterable, Sequence

import httpx

from graph_qualys.provider.exceptions import (
    QualysAuthenticationError,
    QualysError,
    QualysResponseError,
)
from graph_qualys.provider.models import RateLimitConfig, RateLimitState
from graph_qualys.provider.request import RequestExecutor, RequestObserver, SleepFn
from graph_qualys.provider.xml_utils import (
    XMLParseError,
    build_criteria_xml,
    build_service_request,
    parse_xml,
    to_list,
)

logger = logging.getLogger(__name__)

_XML_HEADERS = {"Content-Type": "text/xml"}


def _chunks(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _is_true(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _expand_id_range(value: Any) -> list[int]:
    """Expand an ``ID_RANGE`` such as ``"100-103"`` into its member IDs."""
    start, _, end = str(value).partition("-")
    if not end:
        return [int(start)]
    return list(range(int(start), int(end) + 1))


class QualysAPIClient:
    """Async client for the Qualys API (backed by ``httpx.AsyncClient``).

    Every request is routed through one :class:`RequestExecutor`, so
    concurrent callers share a single rate-limit budget.
    """

    def __init__(
        self,
        api_url: str,
        username: str,
        password: str,
        *,
        rate_limit_config: RateLimitConfig | None = None,
        rate_limit_state: RateLimitState | None = None,
        timeout: float = 300.0,
        observers: Iterable[RequestObserver] = (),
        _transport: httpx.AsyncBaseTransport | None = None,
        _sleep: SleepFn | None = None,
    ) -> None:
        kwargs: dict[str, Any] = {
            "base_url": api_url.rstrip("/"),
            "auth": httpx.BasicAuth(username, password),
            "headers": {"X-Requested-With": "graph-qualys"},
            "timeout": timeout,
        }
        if _transport is not None:
            kwargs["transport"] = _transport
        self._client = httpx.AsyncClient(**kwargs)
        self._username = username
        self.executor = RequestExecutor(
            rate_limit_config, rate_limit_state, observers, _sleep=_sleep,
        )

    @classmethod
    def from_settings(cls, settings: Any, **kwargs: Any) -> QualysAPIClient:
        """Build a client from a :class:`graph_qualys.config.Settings`."""
        rate_limit_config = RateLimitConfig(
            response_code=settings.rate_limit_response_code,
            max_attempts=settings.rate_limit_max_attempts,
            reserve_limit=settings.rate_limit_reserve,
            cooldown_period=settings.rate_limit_cooldown_ms,
        )
        return cls(
            settings.qualys_api_url,
            settings.qualys_username,
            settings.qualys_password,
            rate_limit_config=rate_limit_config,
            timeout=settings.request_timeout,
            **kwargs,
        )

    @property
    def rate_limit_state(self) -> RateLimitState:
        return self.executor.state

    # -- context manager -----------------------------------------------------

    async def __aenter__(self) -> QualysAPIClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    # -- internal ------------------------------------------------------------

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: dict[str, Any] | None = None,
        content: str | None = None,
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        def send():
            return self._client.request(
                method, endpoint,
                params=params, content=content, data=data, headers=headers,
            )

        result = await self.executor.execute(endpoint, send)
        return result.response

    def _parse_service_response(
        self, endpoint: str, response: httpx.Response,
    ) -> dict[str, Any]:
        """Return the ``ServiceResponse`` envelope from a JSON or XML body."""
        if "json" in response.headers.get("content-type", ""):
            body = response.json()
        else:
            body = parse_xml(response.content)
        service = body.get("ServiceResponse") or {}
        response_code = service.get("responseCode")
        if response_code and response_code != "SUCCESS":
            raise QualysResponseError(endpoint, response.status_code, str(response_code))
        return service

    async def _iterate_search(
        self,
        endpoint: str,
        record_tag: str,
        *,
        limit: int,
        offset: int,
        filters_xml: str = "",
    ) -> AsyncIterator[dict[str, Any]]:
        has_more_records = True
        while has_more_records:
            response = await self._request(
                "POST", endpoint,
                content=build_service_request(limit, offset, filters_xml),
                headers=_XML_HEADERS,
            )
            service = self._parse_service_response(endpoint, response)
            records = to_list((service.get("data") or {}).get(record_tag))
            logger.debug("Fetched %d %s records from %s at offset %d",
                         len(records), record_tag, endpoint, offset)
            for record in records:
                yield record

            has_more_records = _is_true(service.get("hasMoreRecords"))
            if has_more_records:
                offset += limit

    # -- public methods ------------------------------------------------------

    async def verify_authentication(self) -> None:
        endpoint = "/api/2.0/fo/activity_log/"
        try:
            await self._request(
                "GET", endpoint,
                params={
                    "action": "list",
                    "username": self._username,
                    "truncation_limit": 1,
                },
            )
        except (QualysError, httpx.HTTPError) as err:
            raise QualysAuthenticationError(
                endpoint,
                getattr(err, "status", None),
                getattr(err, "status_text", str(err)),
            ) from err

    async def fetch_portal_info(self) -> dict[str, Any] | None:
        """Portal version details, or *None* if the portal API is unavailable."""
        endpoint = "/qps/rest/portal/version"
        try:
            response = await self._request("GET", endpoint)
            return self._parse_service_response(endpoint, response).get("data")
        except (QualysError, httpx.HTTPError, XMLParseError, ValueError):
            logger.warning("Unable to fetch portal info from %s", endpoint, exc_info=True)
            return None

    async def iterate_web_apps(
        self,
        *,
        filters: Iterable[tuple[str, str, Any]] | None = None,
        limit: int = 100,
        offset: int = 1,
    ) -> AsyncIterator[dict[str, Any]]:
        """Iterate web applications.

        Details are minimal; use :meth:`fetch_web_app` for the rest.
        """
        async for web_app in self._iterate_search(
            "/qps/rest/3.0/search/was/webapp", "WebApp",
            limit=limit, offset=offset,
            filters_xml=build_criteria_xml(filters or ()),
        ):
            yield web_app

    async def fetch_web_app(self, web_app_id: int) -> dict[str, Any] | None:
        endpoint = f"/qps/rest/3.0/get/was/webapp/{web_app_id}"
        response = await self._request("GET", endpoint)
        service = self._parse_service_response(endpoint, response)
        return (service.get("data") or {}).get("WebApp")

    async def iterate_web_app_findings(
        self,
        web_app_ids: Sequence[int],
        *,
        limit: int = 100,
    ) -> AsyncIterator[dict[str, Any]]:
        if not web_app_ids:
            return
        filters_xml = build_criteria_xml(
            [("webApp.id", "IN", ",".join(str(i) for i in web_app_ids))]
        )
        async for finding in self._iterate_search(
            "/qps/rest/3.0/search/was/finding", "Finding",
            limit=limit, offset=1, filters_xml=filters_xml,
        ):
            yield finding

    async def fetch_host_ids(self) -> list[int]:
        """Answer the complete set of VM module ("QWEB") host IDs."""
        endpoint = "/api/2.0/fo/asset/host/"
        response = await self._request(
            "GET", endpoint,
            # truncation_limit=0 fetches every ID in a single request
            params={"action": "list", "details": "None", "truncation_limit": 0},
        )
        output = parse_xml(response.content).get("HOST_LIST_OUTPUT") or {}
        id_set = (output.get("RESPONSE") or {}).get("ID_SET") or {}
        host_ids = [int(i) for i in to_list(id_set.get("ID"))]
        for id_range in to_list(id_set.get("ID_RANGE")):
            host_ids.extend(_expand_id_range(id_range))
        return host_ids

    async def fetch_host_details(self, host_id: int) -> dict[str, Any] | None:
        """Fetch host details from Asset Management by QWEB host ID."""
        endpoint = "/qps/rest/2.0/search/am/hostasset"
        response = await self._request(
            "POST", endpoint,
            content=build_service_request(
                1, filters_xml=build_criteria_xml([("qwebHostId", "EQUALS", host_id)]),
            ),
            headers=_XML_HEADERS,
        )
        service = self._parse_service_response(endpoint, response)
        return (service.get("data") or {}).get("HostAsset")

    async def iterate_host_assets(
        self, *, limit: int = 100, offset: int = 1,
    ) -> AsyncIterator[dict[str, Any]]:
        async for host_asset in self._iterate_search(
            "/qps/rest/2.0/search/am/hostasset", "HostAsset",
            limit=limit, offset=offset,
        ):
            yield host_asset

    async def iterate_host_detections(
        self,
        host_ids: Sequence[int],
        *,
        batch_size: int = 500,
    ) -> AsyncIterator[tuple[dict[str, Any], list[dict[str, Any]]]]:
        """Iterate ``(host, detections)`` for the given QWEB host IDs.

        These are the findings of vulnerabilities on each host, not the
        vulnerabilities themselves (see :meth:`iterate_vulnerabilities`).
        """
        endpoint = "/api/2.0/fo/asset/host/vm/detection/"
        for ids in _chunks(list(host_ids), batch_size):
            response = await self._request(
                "POST", endpoint,
                data={
                    "action": "list",
                    "show_tags": "1",
                    "show_igs": "1",
                    "output_format": "XML",
                    "ids": ",".join(str(i) for i in ids),
                },
            )
            output = parse_xml(response.content).get("HOST_LIST_VM_DETECTION_OUTPUT") or {}
            host_list = (output.get("RESPONSE") or {}).get("HOST_LIST") or {}
            for host in to_list(host_list.get("HOST")):
                detections = to_list((host.get("DETECTION_LIST") or {}).get("DETECTION"))
                yield host, detections

    async def iterate_vulnerabilities(
        self,
        qids: Sequence[int],
        *,
        batch_size: int = 100,
    ) -> AsyncIterator[dict[str, Any]]:
        """Iterate knowledge base entries for the given QIDs."""
        endpoint = "/api/2.0/fo/knowledge_base/vuln/"
        for ids in _chunks(list(qids), batch_size):
            response = await self._request(
                "GET", endpoint,
                params={
                    "action": "list",
                    "details": "All",
                    "ids": ",".join(str(i) for i in ids),
                },
            )
            output = parse_xml(response.content).get("KNOWLEDGE_BASE_VULN_LIST_OUTPUT") or {}
            vuln_list = (output.get("RESPONSE") or {}).get("VULN_LIST") or {}
            for vuln in to_list(vuln_list.get("VULN")):
                yield vuln
