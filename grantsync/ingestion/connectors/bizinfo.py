"""
기업마당 (bizinfo.go.kr) connector.

The Ministry of SMEs program API returns JSON. Records normally arrive in
``jsonArray``; older deployments used ``result`` or a data.go.kr style
``response.body.items`` envelope. Errors are reported in-band via ``reqErr``.

Query parameters:
- crtfcKey: API key
- dataType: json
- searchCnt / pageUnit: page size
- pageIndex: 1-based page number

No category filter is sent, so one call covers every support field.
"""

import logging
from datetime import datetime
from typing import Any

from grantsync.errors import SourceResponseError
from grantsync.ingestion.base_connector import BaseConnector
from grantsync.ingestion.http_client import HTTPClient
from grantsync.ingestion.schemas import DataSource

logger = logging.getLogger(__name__)


class BizinfoConnector(BaseConnector):
    """Connector for the 기업마당 program registry."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        http_client: HTTPClient | None = None,
        **kwargs: Any,
    ):
        super().__init__(http_client=http_client, **kwargs)
        self._api_key = api_key
        self._base_url = base_url

    @property
    def data_source(self) -> str:
        return DataSource.BIZINFO.value

    async def fetch_page(
        self,
        page: int,
        page_size: int,
        registered_after: datetime | None = None,
    ) -> list[dict[str, Any]]:
        # The registry has no registration-date filter; the full window is
        # re-read and the upsert makes that idempotent.
        params = {
            "crtfcKey": self._api_key,
            "dataType": "json",
            "searchCnt": page_size,
            "pageIndex": page,
            "pageUnit": page_size,
        }
        response = await self._http.get(self._base_url, params=params)

        try:
            data = response.json()
        except ValueError as e:
            raise SourceResponseError(f"기업마당 returned non-JSON payload: {e}") from e

        if not isinstance(data, dict):
            raise SourceResponseError("기업마당 returned an unexpected payload shape")

        if data.get("reqErr"):
            raise SourceResponseError(f"기업마당 API error: {data['reqErr']}")

        records = (
            data.get("jsonArray")
            or data.get("result")
            or ((data.get("response") or {}).get("body") or {}).get("items")
            or []
        )
        if isinstance(records, dict):
            records = [records]

        return [r for r in records if isinstance(r, dict)]
