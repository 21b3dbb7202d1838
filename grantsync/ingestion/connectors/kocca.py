"""
KOCCA (Korea Creative Content Agency) connectors.

Two boards share one JSON envelope, ``{"INFO": {"list": [...]}}``:
- PIMS: support program announcements
- Finance: financing/investment notices (board category ``a2``)

Both accept a ``viewStartDt`` (YYYYMMDD) lower bound, which carries
incremental syncs. Without one, PIMS looks back three years and Finance
reads everything since 2020-01-01.
"""

import logging
import re
from abc import abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any

from grantsync.errors import SourceResponseError
from grantsync.ingestion.base_connector import BaseConnector, format_yyyymmdd
from grantsync.ingestion.http_client import HTTPClient
from grantsync.ingestion.schemas import DataSource

logger = logging.getLogger(__name__)

PIMS_LOOKBACK = timedelta(days=3 * 365)
FINANCE_EPOCH = datetime(2020, 1, 1, tzinfo=timezone.utc)
FINANCE_CATEGORY = "a2"

_LINK_SEQ_PATTERN = re.compile(r"/(\d+)\.do")


def extract_info_list(data: Any, board: str) -> list[dict[str, Any]]:
    """Pull ``INFO.list`` out of a KOCCA response."""
    if not isinstance(data, dict):
        raise SourceResponseError(f"KOCCA {board} returned an unexpected payload shape")

    info = data.get("INFO") or {}
    records = info.get("list") or []
    if isinstance(records, dict):
        records = [records]

    return [r for r in records if isinstance(r, dict)]


def seq_from_link(link: str | None) -> str | None:
    """Extract the post number from a finance board link (``.../1846560.do``)."""
    if not link:
        return None
    match = _LINK_SEQ_PATTERN.search(link)
    return match.group(1) if match else None


class _KoccaConnector(BaseConnector):
    """Shared request plumbing for the KOCCA boards."""

    board = ""

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

    @abstractmethod
    def _extra_params(self, registered_after: datetime | None) -> dict[str, Any]:
        """Board-specific query parameters."""

    async def fetch_page(
        self,
        page: int,
        page_size: int,
        registered_after: datetime | None = None,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            "serviceKey": self._api_key,
            "pageNo": page,
            "numOfRows": page_size,
        }
        params.update(self._extra_params(registered_after))

        response = await self._http.get(self._base_url, params=params)
        try:
            data = response.json()
        except ValueError as e:
            raise SourceResponseError(
                f"KOCCA {self.board} returned non-JSON payload: {e}"
            ) from e

        return extract_info_list(data, self.board)


class KoccaPimsConnector(_KoccaConnector):
    """Connector for the KOCCA PIMS announcement board."""

    board = "PIMS"

    @property
    def data_source(self) -> str:
        return DataSource.KOCCA_PIMS.value

    def _extra_params(self, registered_after: datetime | None) -> dict[str, Any]:
        start = registered_after or (datetime.now(timezone.utc) - PIMS_LOOKBACK)
        return {"viewStartDt": format_yyyymmdd(start)}


class KoccaFinanceConnector(_KoccaConnector):
    """Connector for the KOCCA financing board."""

    board = "Finance"

    @property
    def data_source(self) -> str:
        return DataSource.KOCCA_FINANCE.value

    def _extra_params(self, registered_after: datetime | None) -> dict[str, Any]:
        start = registered_after or FINANCE_EPOCH
        return {
            "cate": FINANCE_CATEGORY,
            "viewStartDt": format_yyyymmdd(start),
            "viewEndDt": format_yyyymmdd(datetime.now(timezone.utc)),
        }

    async def fetch_page(
        self,
        page: int,
        page_size: int,
        registered_after: datetime | None = None,
    ) -> list[dict[str, Any]]:
        records = await super().fetch_page(page, page_size, registered_after)

        # The board has no id field; the post number lives in the link
        for record in records:
            seq = seq_from_link(record.get("link"))
            if seq and not record.get("seq"):
                record["seq"] = seq

        return records
