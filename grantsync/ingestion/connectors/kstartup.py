"""
K-Startup connector (data.go.kr announcement service).

The API answers in XML::

    <results>
      <data>
        <item>
          <col name="pbanc_sn">174067</col>
          <col name="biz_pbanc_nm">...</col>
        </item>
      </data>
    </results>

Each ``<item>`` is flattened into a dict keyed by the ``name`` attribute
of its ``<col>`` children. Gateway-level failures (bad service key, quota)
come back as an ``<OpenAPI_ServiceResponse>`` document instead.
"""

import logging
from datetime import datetime
from typing import Any

from bs4 import BeautifulSoup

from grantsync.errors import SourceResponseError
from grantsync.ingestion.base_connector import BaseConnector
from grantsync.ingestion.http_client import HTTPClient
from grantsync.ingestion.schemas import DataSource

logger = logging.getLogger(__name__)

ANNOUNCEMENT_PATH = "/kisedKstartupService01/getAnnouncementInformation01"


def parse_announcements(xml_text: str) -> list[dict[str, Any]]:
    """
    Flatten a K-Startup XML response into raw record dicts.

    Raises:
        SourceResponseError: If the payload is a gateway error or has no
            ``<results>`` envelope.
    """
    soup = BeautifulSoup(xml_text, "xml")

    root = soup.find("results")
    if root is None:
        header = soup.find("cmmMsgHeader")
        if header is not None:
            reason = header.find("returnAuthMsg") or header.find("errMsg")
            message = reason.get_text(strip=True) if reason else "unknown error"
            raise SourceResponseError(f"K-Startup gateway error: {message}")
        raise SourceResponseError("K-Startup returned a payload without <results>")

    records: list[dict[str, Any]] = []
    for item in root.find_all("item"):
        record: dict[str, Any] = {}
        for col in item.find_all("col", recursive=False):
            name = col.get("name")
            if name:
                record[name] = col.get_text().strip()
        records.append(record)

    return records


class KStartupConnector(BaseConnector):
    """Connector for the K-Startup announcement registry."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        http_client: HTTPClient | None = None,
        **kwargs: Any,
    ):
        super().__init__(http_client=http_client, **kwargs)
        self._api_key = api_key
        self._url = base_url.rstrip("/") + ANNOUNCEMENT_PATH

    @property
    def data_source(self) -> str:
        return DataSource.KSTARTUP.value

    async def fetch_page(
        self,
        page: int,
        page_size: int,
        registered_after: datetime | None = None,
    ) -> list[dict[str, Any]]:
        params = {
            "serviceKey": self._api_key,
            "page": page,
            "perPage": page_size,
        }
        response = await self._http.get(
            self._url,
            params=params,
            headers={"Accept": "application/xml"},
        )
        records = parse_announcements(response.text)

        if not records:
            logger.debug(f"K-Startup page {page} has no items")

        return records
