"""
Technopark board crawlers (서울테크노파크, 경기테크노파크).

Neither technopark publishes an API, so these connectors post the same
form their list pages submit and parse the returned HTML table with
BeautifulSoup. Raw records keep the board's own strings (dates stay as
``YYYY.MM.DD`` or ``YYYY-MM-DD HH:MM``); the normalizer parses them.

Seoul TP list rows are ``번호 | 제목 | 작성자 | 등록일 | 조회수``. The post id
only appears inside the title link, as ``goBoardView(..., '00003938')`` or a
``nttId=`` query parameter. Most notices are images with attached files, so
each listed post's detail page is read for its attachments and body text.

Gyeonggi TP list rows are ``번호 | 사업명 | 사업유형 | 지역 | 주관기관 |
신청기간``. The post id is in ``fn_goView('172161')`` and the region is a
hidden ``span.bs_areacd`` holding one or more comma-separated codes.

Neither board filters by date server-side. Both list newest first, so an
incremental sync drops older rows and the short page ends pagination.
"""

import logging
import re
from datetime import datetime
from typing import Any

from bs4 import BeautifulSoup
from bs4.element import Tag

from grantsync.errors import RetryableError, SourceHTTPError, SourceResponseError
from grantsync.ingestion.base_connector import BaseConnector
from grantsync.ingestion.http_client import HTTPClient
from grantsync.ingestion.normalizer import parse_date, split_period
from grantsync.ingestion.schemas import DataSource

logger = logging.getLogger(__name__)

# Both boards reject requests that do not look like a browser form post
BROWSER_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "ko-KR,ko;q=0.9,en-US;q=0.8,en;q=0.7",
}

SEOUL_TP_BASE_URL = "https://www.seoultp.or.kr"
SEOUL_TP_LIST_PATH = "/user/nd19746.do"
SEOUL_TP_MENU_ID = "19746"

GYEONGGI_TP_BASE_URL = "https://pms.gtp.or.kr"
GYEONGGI_TP_LIST_PATH = "/web/business/webBusinessList.do"
GYEONGGI_TP_VIEW_PATH = "/web/business/webBusinessView.do"

_GO_BOARD_VIEW = re.compile(r"goBoardView\([^,]+,\s*[^,]+,\s*'([^']+)'\)")
_NTT_ID = re.compile(r"nttId=([^&'\"]+)")
_ATTACH_NO = re.compile(r"attachfileDownload\([^,]*,\s*'([^']+)'\)")
_FN_GO_VIEW = re.compile(r"fn_goView\('(\d+)'\)")
_WHITESPACE = re.compile(r"\s+")

# Seoul TP boilerplate cell shown above every notice body
_SEOUL_TP_META_TEXT = "기업지원공고게시물을 상세히"

GYEONGGI_WHOLE_PROVINCE = "경기도 전체"
GYEONGGI_DEFAULT_REGION = "경기"

# bsAreaMap codes published by the Gyeonggi TP board
GYEONGGI_REGION_CODES = {
    "CD003004001": "서울",
    "CD003004002": "인천",
    "CD003004003": "가평군",
    "CD003004004": "고양시",
    "CD003004005": "과천시",
    "CD003004006": "광명시",
    "CD003004007": "광주시",
    "CD003004008": "구리시",
    "CD003004009": "군포시",
    "CD003004010": "김포시",
    "CD003004011": "남양주시",
    "CD003004012": "동두천시",
    "CD003004013": "부천시",
    "CD003004014": "성남시",
    "CD003004015": "수원시",
    "CD003004016": "시흥시",
    "CD003004017": "안산시",
    "CD003004018": "안성시",
    "CD003004019": "안양시",
    "CD003004020": "양주시",
    "CD003004021": "양평군",
    "CD003004022": "여주시",
    "CD003004023": "연천군",
    "CD003004024": "오산시",
    "CD003004025": "용인시",
    "CD003004026": "의왕시",
    "CD003004027": "의정부시",
    "CD003004028": "이천시",
    "CD003004029": "파주시",
    "CD003004030": "평택시",
    "CD003004031": "포천시",
    "CD003004032": "하남시",
    "CD003004033": "화성시",
    "CD003004034": "기타",
}

# Notices listing this many municipalities are province-wide
_PROVINCE_WIDE_CODE_COUNT = 10


def _cell_text(cell: Tag) -> str:
    return _WHITESPACE.sub(" ", cell.get_text(" ", strip=True)).strip()


def _absolute(base_url: str, path: str) -> str:
    return path if path.startswith(("http://", "https://")) else f"{base_url}{path}"


def _list_rows(html: str, min_cells: int) -> list[list[Tag]]:
    soup = BeautifulSoup(html, "html.parser")
    rows = []
    for row in soup.select("table tbody tr"):
        cells = row.find_all("td")
        # Header repeats and "no posts" rows have fewer cells
        if len(cells) >= min_cells:
            rows.append(cells)
    return rows


def _is_before(value: str | None, registered_after: datetime | None) -> bool:
    if registered_after is None:
        return False
    parsed = parse_date(value)
    return parsed is not None and parsed < registered_after


# ── 서울테크노파크 ────────────────────────────────────────────────────


def seoul_tp_board_no(href: str | None) -> str | None:
    """Post id from a Seoul TP title link, or None."""
    if not href:
        return None
    match = _GO_BOARD_VIEW.search(href) or _NTT_ID.search(href)
    return match.group(1) if match else None


def seoul_tp_detail_url(board_no: str, base_url: str = SEOUL_TP_BASE_URL) -> str:
    return f"{base_url}{SEOUL_TP_LIST_PATH}?View&boardNo={board_no}&menuCode=www"


def parse_seoul_tp_list(html: str, base_url: str = SEOUL_TP_BASE_URL) -> list[dict[str, Any]]:
    """
    Parse a Seoul TP list page into raw records.

    Rows whose link carries no post id are returned without ``boardNo``;
    the sync skips them rather than inventing an id.
    """
    records: list[dict[str, Any]] = []

    for cells in _list_rows(html, min_cells=5):
        link = cells[1].find("a")
        title = _cell_text(link) if link else ""
        title = title or _cell_text(cells[1])
        if not title or title == "제목":
            continue

        href = (link.get("href") or link.get("onclick")) if link else None
        board_no = seoul_tp_board_no(href)
        views = _cell_text(cells[4])

        record: dict[str, Any] = {
            "title": title,
            "author": _cell_text(cells[2]),
            "registeredAt": _cell_text(cells[3]),
            "viewCount": int(views) if views.isdigit() else 0,
        }
        if board_no:
            record["boardNo"] = board_no
            record["sourceUrl"] = seoul_tp_detail_url(board_no, base_url)
        records.append(record)

    return records


def _body_text(cell: Tag) -> str:
    for tag in cell.find_all(["img", "script", "style"]):
        tag.decompose()
    for br in cell.find_all("br"):
        br.replace_with("\n")

    lines = []
    for block in cell.get_text("\n").split("\n"):
        line = _WHITESPACE.sub(" ", block).strip()
        if line:
            lines.append(line)
    return "\n".join(lines)


def parse_seoul_tp_detail(html: str, base_url: str = SEOUL_TP_BASE_URL) -> dict[str, Any]:
    """
    Parse a Seoul TP post page.

    Returns:
        dict with ``attachments`` (fileName/downloadUrl pairs, in page
        order), ``contentImages`` (notice body images, site chrome
        excluded) and ``textContent``.
    """
    soup = BeautifulSoup(html, "html.parser")

    images = [
        _absolute(base_url, img["src"])
        for img in soup.find_all("img", src=True)
        if "/common/attachfile/attachfileView.do" in img["src"]
    ]

    attachments = []
    for link in soup.select('a[href="#attachdown"]'):
        name = _cell_text(link)
        if not name:
            continue
        match = _ATTACH_NO.search(link.get("onclick") or "")
        attachments.append({
            "fileName": name,
            "downloadUrl": (
                f"{base_url}/common/attachfile/attachfileDownload.do?attachNo={match.group(1)}"
                if match else None
            ),
        })

    texts = []
    for cell in soup.select("table td[colspan]"):
        text = _body_text(cell)
        if len(text) > 20 and _SEOUL_TP_META_TEXT not in text:
            texts.append(text)

    return {
        "attachments": attachments,
        "contentImages": images,
        "textContent": "\n".join(texts),
    }


class SeoulTPConnector(BaseConnector):
    """
    Crawler for the 서울테크노파크 support notice board.

    With ``fetch_details`` on, every listed post's page is read and its
    attachments, images and body text merged into the record. A detail
    page that cannot be read leaves the list record as it is.
    """

    def __init__(
        self,
        base_url: str = SEOUL_TP_BASE_URL,
        fetch_details: bool = True,
        http_client: HTTPClient | None = None,
        **kwargs: Any,
    ):
        super().__init__(http_client=http_client, **kwargs)
        self._base_url = base_url.rstrip("/")
        self._list_url = self._base_url + SEOUL_TP_LIST_PATH
        self._fetch_details = fetch_details

    @property
    def data_source(self) -> str:
        return DataSource.SEOUL_TP.value

    async def fetch_page(
        self,
        page: int,
        page_size: int,
        registered_after: datetime | None = None,
    ) -> list[dict[str, Any]]:
        form = {
            "page": str(page),
            "pagingAt": "Y",
            "listSize": str(page_size),
            "menuContentId": SEOUL_TP_MENU_ID,
            "insInsttCode": "seoul",
        }
        response = await self._http.post(
            self._list_url,
            data=form,
            headers={**BROWSER_HEADERS, "Referer": self._list_url},
        )
        records = [
            r for r in parse_seoul_tp_list(response.text, self._base_url)
            if not _is_before(r.get("registeredAt"), registered_after)
        ]

        if self._fetch_details:
            for record in records:
                if record.get("boardNo"):
                    record.update(await self.fetch_detail(record["boardNo"]))

        return records

    async def fetch_detail(self, board_no: str) -> dict[str, Any]:
        """Read one post page. Returns {} when the page cannot be read."""
        url = seoul_tp_detail_url(board_no, self._base_url)
        try:
            response = await self._http.get(
                url, headers={**BROWSER_HEADERS, "Referer": self._list_url},
            )
            return parse_seoul_tp_detail(response.text, self._base_url)
        except (SourceHTTPError, SourceResponseError, RetryableError) as e:
            logger.warning(f"{self.name} detail page {board_no} unavailable: {e}")
            return {}


# ── 경기테크노파크 ────────────────────────────────────────────────────


def gyeonggi_region(codes: str | None) -> str:
    """
    Resolve a Gyeonggi TP region code list to display names.

    Ten or more codes means the whole province; unknown or missing codes
    fall back to 경기.
    """
    parts = [c.strip() for c in (codes or "").split(",") if c.strip()]
    if not parts:
        return GYEONGGI_DEFAULT_REGION
    if len(parts) >= _PROVINCE_WIDE_CODE_COUNT:
        return GYEONGGI_WHOLE_PROVINCE

    names = list(dict.fromkeys(
        GYEONGGI_REGION_CODES[c] for c in parts if c in GYEONGGI_REGION_CODES
    ))
    return ", ".join(names) if names else GYEONGGI_DEFAULT_REGION


def parse_gyeonggi_tp_list(html: str, base_url: str = GYEONGGI_TP_BASE_URL) -> list[dict[str, Any]]:
    """Parse a Gyeonggi TP business list page into raw records."""
    records: list[dict[str, Any]] = []

    for cells in _list_rows(html, min_cells=6):
        code_span = cells[3].select_one("span.bs_areacd")
        region_codes = _cell_text(code_span) if code_span else ""
        if code_span:
            code_span.decompose()

        title_cell = cells[1]
        link = title_cell.find("a")
        title = _cell_text(title_cell)
        if not title:
            continue

        match = _FN_GO_VIEW.search((link.get("onclick") or link.get("href") or "") if link else "")

        record: dict[str, Any] = {
            "title": title,
            "businessType": _cell_text(cells[2]),
            "region": gyeonggi_region(region_codes),
            "regionCode": region_codes,
            "hostOrganization": _cell_text(cells[4]),
            "applicationPeriod": _cell_text(cells[5]),
        }
        if match:
            record["idx"] = match.group(1)
            record["sourceUrl"] = f"{base_url}{GYEONGGI_TP_VIEW_PATH}?idx={match.group(1)}"
        records.append(record)

    return records


class GyeonggiTPConnector(BaseConnector):
    """Crawler for the 경기테크노파크 business notice board."""

    def __init__(
        self,
        base_url: str = GYEONGGI_TP_BASE_URL,
        http_client: HTTPClient | None = None,
        **kwargs: Any,
    ):
        super().__init__(http_client=http_client, **kwargs)
        self._base_url = base_url.rstrip("/")
        self._list_url = self._base_url + GYEONGGI_TP_LIST_PATH

    @property
    def data_source(self) -> str:
        return DataSource.GYEONGGI_TP.value

    async def fetch_page(
        self,
        page: int,
        page_size: int,
        registered_after: datetime | None = None,
    ) -> list[dict[str, Any]]:
        # Empty filters mean every period, business type and region
        form = {
            "page": str(page),
            "pageUnit": str(page_size),
            "schStrDiv": "1",
            "schSdt": "",
            "schEdt": "",
            "schBusinesscd": "",
            "schAreacd": "",
        }
        response = await self._http.post(
            self._list_url,
            data=form,
            headers={**BROWSER_HEADERS, "Referer": self._list_url},
        )
        records = parse_gyeonggi_tp_list(response.text, self._base_url)

        if registered_after is None:
            return records
        return [
            r for r in records
            if not _is_period_before(r.get("applicationPeriod"), registered_after)
        ]


def _is_period_before(period: str | None, registered_after: datetime) -> bool:
    start, _ = split_period(period)
    return start is not None and start < registered_after
