"""Tests for the technopark board crawlers."""

from datetime import datetime, timezone

import httpx
import pytest
import respx

from grantsync.errors import SourceHTTPError
from grantsync.ingestion.connectors.technopark import (
    GYEONGGI_WHOLE_PROVINCE,
    GyeonggiTPConnector,
    SeoulTPConnector,
    gyeonggi_region,
    parse_gyeonggi_tp_list,
    parse_seoul_tp_detail,
    parse_seoul_tp_list,
    seoul_tp_board_no,
)
from grantsync.ingestion.http_client import HTTPClient
from grantsync.ingestion.retry import RetryConfig

SEOUL_BASE = "https://seoultp.example.test"
SEOUL_LIST_URL = SEOUL_BASE + "/user/nd19746.do"
GYEONGGI_BASE = "https://gtp.example.test"
GYEONGGI_LIST_URL = GYEONGGI_BASE + "/web/business/webBusinessList.do"

SEOUL_LIST_HTML = """
<html><body>
<table class="board-list">
  <thead><tr><th>번호</th><th>제목</th><th>작성자</th><th>등록일</th><th>조회수</th></tr></thead>
  <tbody>
    <tr>
      <td>120</td>
      <td class="subject">
        <a href="javascript:goBoardView('/user/nd19746.do', 'View', '00003938');">
          [모집] 2026년 스타트업 R&amp;D 기술사업화 지원
        </a>
      </td>
      <td>기업지원팀</td>
      <td>2026.10.14</td>
      <td>431</td>
    </tr>
    <tr>
      <td>119</td>
      <td><a href="/user/nd19746.do?View&amp;nttId=00003901&amp;menuCode=www">입주기업 모집 공고</a></td>
      <td>창업지원팀</td>
      <td>2026.09.02</td>
      <td>-</td>
    </tr>
    <tr>
      <td>118</td>
      <td><a href="#none">안내 사항</a></td>
      <td>운영팀</td>
      <td>2026.08.30</td>
      <td>12</td>
    </tr>
  </tbody>
</table>
</body></html>
"""

SEOUL_DETAIL_HTML = """
<html><body>
<img src="/images/common/logo.png" alt="서울테크노파크">
<table class="board-view">
  <tr><td colspan="4">기업지원공고게시물을 상세히 확인하실 수 있습니다. 첨부파일을 참고하세요.</td></tr>
  <tr>
    <td colspan="4">
      <p>서울 소재 스타트업의 기술사업화를 지원합니다.<br>신청 기간은 공고문을 참고하시기 바랍니다.</p>
      <img src="/common/attachfile/attachfileView.do?attachNo=00011201">
      <script>var tracking = 1;</script>
    </td>
  </tr>
</table>
<ul class="file-list">
  <li><a href="#attachdown" onclick="attachfileDownload('/common/attachfile/attachfileDownload.do', '00011202'); return false;">공고문.hwp</a></li>
  <li><a href="#attachdown" onclick="return false;">신청서.docx</a></li>
</ul>
</body></html>
"""

GYEONGGI_LIST_HTML = """
<html><body>
<table>
  <tbody>
    <tr>
      <td>51</td>
      <td class="tl"><a href="#" onclick="fn_goView('172161'); return false;">[기술지원] 2026 제조혁신 바우처</a></td>
      <td>기술지원</td>
      <td><span class="bs_areacd" style="display:none">CD003004015,CD003004014</span><span>수원시 외</span></td>
      <td>경기테크노파크</td>
      <td>2026-10-01
          ~ 2026-10-31</td>
    </tr>
    <tr>
      <td>50</td>
      <td class="tl"><a href="#">인력양성 교육생 모집</a></td>
      <td>인력지원</td>
      <td><span class="bs_areacd"></span></td>
      <td>경기도</td>
      <td>2026-09-01 ~ 2026-09-30</td>
    </tr>
    <tr><td colspan="6">등록된 게시물이 없습니다.</td></tr>
  </tbody>
</table>
</body></html>
"""


def _client() -> HTTPClient:
    return HTTPClient(RetryConfig(max_retries=1, base_delay=0, jitter=0))


def _form(request: httpx.Request) -> dict[str, str]:
    return dict(httpx.QueryParams(request.content.decode()))


class TestSeoulTPParsing:
    def test_list_rows(self):
        records = parse_seoul_tp_list(SEOUL_LIST_HTML, SEOUL_BASE)

        assert len(records) == 3
        first = records[0]
        assert first["boardNo"] == "00003938"
        assert first["title"] == "[모집] 2026년 스타트업 R&D 기술사업화 지원"
        assert first["author"] == "기업지원팀"
        assert first["registeredAt"] == "2026.10.14"
        assert first["viewCount"] == 431
        assert first["sourceUrl"] == (
            f"{SEOUL_BASE}/user/nd19746.do?View&boardNo=00003938&menuCode=www"
        )

    def test_ntt_id_link_and_missing_view_count(self):
        record = parse_seoul_tp_list(SEOUL_LIST_HTML, SEOUL_BASE)[1]

        assert record["boardNo"] == "00003901"
        assert record["viewCount"] == 0

    def test_row_without_post_id_has_no_board_no(self):
        record = parse_seoul_tp_list(SEOUL_LIST_HTML, SEOUL_BASE)[2]

        assert "boardNo" not in record
        assert "sourceUrl" not in record

    def test_board_no_patterns(self):
        assert seoul_tp_board_no("goBoardView('/x.do','View','00000001')") == "00000001"
        assert seoul_tp_board_no("/view.do?nttId=42&menuCode=www") == "42"
        assert seoul_tp_board_no("#none") is None
        assert seoul_tp_board_no(None) is None

    def test_detail_page(self):
        detail = parse_seoul_tp_detail(SEOUL_DETAIL_HTML, SEOUL_BASE)

        assert detail["contentImages"] == [
            f"{SEOUL_BASE}/common/attachfile/attachfileView.do?attachNo=00011201",
        ]
        assert detail["attachments"] == [
            {
                "fileName": "공고문.hwp",
                "downloadUrl": f"{SEOUL_BASE}/common/attachfile/attachfileDownload.do?attachNo=00011202",
            },
            {"fileName": "신청서.docx", "downloadUrl": None},
        ]
        assert "기술사업화를 지원합니다" in detail["textContent"]
        assert "상세히" not in detail["textContent"]
        assert "tracking" not in detail["textContent"]

    def test_empty_page(self):
        assert parse_seoul_tp_list("<html><body><p>점검 중</p></body></html>") == []


class TestSeoulTPConnector:
    @pytest.mark.asyncio
    @respx.mock
    async def test_posts_list_form(self):
        route = respx.post(SEOUL_LIST_URL).mock(
            return_value=httpx.Response(200, text=SEOUL_LIST_HTML),
        )
        connector = SeoulTPConnector(
            SEOUL_BASE, fetch_details=False, http_client=_client(), page_size=10,
        )

        records = await connector.fetch()

        assert [r.get("boardNo") for r in records] == ["00003938", "00003901", None]
        request = route.calls[0].request
        assert _form(request) == {
            "page": "1",
            "pagingAt": "Y",
            "listSize": "10",
            "menuContentId": "19746",
            "insInsttCode": "seoul",
        }
        assert request.headers["Referer"] == SEOUL_LIST_URL
        assert "Mozilla" in request.headers["User-Agent"]
        await connector.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_merges_detail_pages(self):
        respx.post(SEOUL_LIST_URL).mock(return_value=httpx.Response(200, text=SEOUL_LIST_HTML))
        detail = respx.get(SEOUL_LIST_URL, params={"boardNo": "00003938"}).mock(
            return_value=httpx.Response(200, text=SEOUL_DETAIL_HTML),
        )
        respx.get(SEOUL_LIST_URL, params={"boardNo": "00003901"}).mock(
            return_value=httpx.Response(200, text="<html><body></body></html>"),
        )
        connector = SeoulTPConnector(SEOUL_BASE, http_client=_client())

        records = await connector.fetch_page(1, 10)

        assert detail.called
        assert records[0]["attachments"][0]["fileName"] == "공고문.hwp"
        assert records[1]["attachments"] == []
        assert "attachments" not in records[2]

    @pytest.mark.asyncio
    @respx.mock
    async def test_detail_failure_keeps_list_record(self):
        respx.post(SEOUL_LIST_URL).mock(return_value=httpx.Response(200, text=SEOUL_LIST_HTML))
        respx.get(SEOUL_LIST_URL).mock(return_value=httpx.Response(404))
        connector = SeoulTPConnector(SEOUL_BASE, http_client=_client())

        records = await connector.fetch_page(1, 10)

        assert len(records) == 3
        assert records[0]["title"].endswith("기술사업화 지원")
        assert "attachments" not in records[0]

    @pytest.mark.asyncio
    @respx.mock
    async def test_incremental_drops_older_rows(self):
        respx.post(SEOUL_LIST_URL).mock(return_value=httpx.Response(200, text=SEOUL_LIST_HTML))
        connector = SeoulTPConnector(SEOUL_BASE, fetch_details=False, http_client=_client())

        records = await connector.fetch_page(
            1, 10, registered_after=datetime(2026, 10, 1, tzinfo=timezone.utc),
        )

        assert [r["boardNo"] for r in records] == ["00003938"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_list_failure_propagates(self):
        respx.post(SEOUL_LIST_URL).mock(return_value=httpx.Response(403))
        connector = SeoulTPConnector(SEOUL_BASE, http_client=_client())

        with pytest.raises(SourceHTTPError) as exc_info:
            await connector.fetch()

        assert exc_info.value.status_code == 403


class TestGyeonggiTPParsing:
    def test_list_rows(self):
        records = parse_gyeonggi_tp_list(GYEONGGI_LIST_HTML, GYEONGGI_BASE)

        assert len(records) == 2
        assert records[0] == {
            "idx": "172161",
            "title": "[기술지원] 2026 제조혁신 바우처",
            "businessType": "기술지원",
            "region": "수원시, 성남시",
            "regionCode": "CD003004015,CD003004014",
            "hostOrganization": "경기테크노파크",
            "applicationPeriod": "2026-10-01 ~ 2026-10-31",
            "sourceUrl": f"{GYEONGGI_BASE}/web/business/webBusinessView.do?idx=172161",
        }

    def test_row_without_view_link_has_no_idx(self):
        record = parse_gyeonggi_tp_list(GYEONGGI_LIST_HTML, GYEONGGI_BASE)[1]

        assert "idx" not in record
        assert record["region"] == "경기"

    def test_region_codes(self):
        many = ",".join(f"CD0030040{n:02d}" for n in range(3, 15))

        assert gyeonggi_region(many) == GYEONGGI_WHOLE_PROVINCE
        assert gyeonggi_region("CD003004025") == "용인시"
        assert gyeonggi_region("CD999") == "경기"
        assert gyeonggi_region(None) == "경기"


class TestGyeonggiTPConnector:
    @pytest.mark.asyncio
    @respx.mock
    async def test_posts_search_form(self):
        route = respx.post(GYEONGGI_LIST_URL).mock(
            return_value=httpx.Response(200, text=GYEONGGI_LIST_HTML),
        )
        connector = GyeonggiTPConnector(GYEONGGI_BASE, http_client=_client(), page_size=20)

        records = await connector.fetch()

        assert len(records) == 2
        assert _form(route.calls[0].request) == {
            "page": "1",
            "pageUnit": "20",
            "schStrDiv": "1",
            "schSdt": "",
            "schEdt": "",
            "schBusinesscd": "",
            "schAreacd": "",
        }
        await connector.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_incremental_uses_period_start(self):
        respx.post(GYEONGGI_LIST_URL).mock(return_value=httpx.Response(200, text=GYEONGGI_LIST_HTML))
        connector = GyeonggiTPConnector(GYEONGGI_BASE, http_client=_client())

        records = await connector.fetch_page(
            1, 20, registered_after=datetime(2026, 9, 15, tzinfo=timezone.utc),
        )

        assert [r["idx"] for r in records] == ["172161"]
