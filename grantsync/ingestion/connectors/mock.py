"""
Mock connector for testing and development.

Generates synthetic raw records shaped like each registry's real payload,
so the normalizer runs its real per-source rules on them. Useful for:
- Running a sync without API credentials
- Exercising the catalog and matching engine locally
- Tests
"""

import random
from datetime import datetime, timedelta, timezone
from typing import Any

from grantsync.ingestion.base_connector import BaseConnector
from grantsync.ingestion.schemas import DataSource

TITLE_TEMPLATES = [
    "[{region}] {year}년 {field} 창업기업 지원사업 공고",
    "{year}년 {field} 분야 기술개발 지원 모집",
    "[{region}] 중소기업 {field} 바우처 지원사업",
    "{field} 스타트업 해외진출 지원 프로그램",
    "{year}년 {field} 콘텐츠 제작 지원 공모",
]

FIELDS = ["AI", "바이오", "콘텐츠", "제조", "수출", "핀테크", "게임", "친환경"]
REGIONS = ["서울", "부산", "경기", "대전", "광주", "전남", "제주"]
AUDIENCES = ["중소기업", "예비창업자", "소상공인", "스타트업", "사회적기업"]


class MockConnector(BaseConnector):
    """
    Connector that generates deterministic synthetic records.

    External ids and titles for a given data source repeat across runs
    (seeded by the source name), so repeated mock syncs exercise the upsert
    path. Dates are relative to the time of construction.
    """

    def __init__(
        self,
        data_source: DataSource | str = DataSource.BIZINFO,
        records_per_fetch: int = 20,
        seed: int | None = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self._data_source = (
            data_source.value if isinstance(data_source, DataSource) else data_source
        )
        self._records_per_fetch = records_per_fetch
        self._rng = random.Random(seed if seed is not None else self._data_source)
        self._records = [self._generate(i) for i in range(records_per_fetch)]

    @property
    def data_source(self) -> str:
        return self._data_source

    async def fetch_page(
        self,
        page: int,
        page_size: int,
        registered_after: datetime | None = None,
    ) -> list[dict[str, Any]]:
        start = (page - 1) * page_size
        return [dict(r) for r in self._records[start:start + page_size]]

    async def health_check(self) -> bool:
        return True

    def _generate(self, index: int) -> dict[str, Any]:
        rng = self._rng
        now = datetime.now(timezone.utc)
        registered = now - timedelta(days=rng.randint(0, 60))
        deadline = registered + timedelta(days=rng.randint(14, 90))
        field = rng.choice(FIELDS)
        region = rng.choice(REGIONS)
        title = rng.choice(TITLE_TEMPLATES).format(
            region=region, year=registered.year, field=field
        )
        audience = rng.choice(AUDIENCES)

        if self._data_source == DataSource.BIZINFO.value:
            return {
                "pblancId": f"PBLN_MOCK_{index:05d}",
                "pblancNm": title,
                "bsnsSumryCn": f"{field} 분야 {audience} 대상 지원사업입니다.",
                "pldirSportRealmLclasCodeNm": rng.choice(["기술", "창업", "수출", "금융"]),
                "trgetNm": audience,
                "jrsdInsttNm": f"{region}특별자치도",
                "reqstBeginEndDe": f"{registered:%Y%m%d} ~ {deadline:%Y%m%d}",
                "creatPnttm": f"{registered:%Y-%m-%d %H:%M:%S}",
                "pblancUrl": f"/web/lay1/bbs/S1T122C128/AS/74/view.do?pblancId=PBLN_MOCK_{index:05d}",
                "hashtags": f"{field},{audience},{region}",
            }
        if self._data_source == DataSource.KSTARTUP.value:
            return {
                "pbanc_sn": str(170000 + index),
                "biz_pbanc_nm": title,
                "pbanc_ctnt": f"{field} 분야 창업기업을 모집합니다.",
                "aply_trgt": audience,
                "supt_regin": region,
                "supt_biz_clsfc": rng.choice(["사업화", "멘토링ㆍ컨설팅", "R&D"]),
                "pbanc_rcpt_bgng_dt": f"{registered:%Y%m%d}",
                "pbanc_rcpt_end_dt": f"{deadline:%Y%m%d}",
                "detl_pg_url": f"https://www.k-startup.go.kr/web/contents/bizpbanc-ongoing.do?pbancSn={170000 + index}",
            }
        if self._data_source == DataSource.KOCCA_FINANCE.value:
            seq = 1846000 + index
            return {
                "title": title,
                "cate": "융자지원",
                "genre": field,
                "regDate": f"{registered:%Y%m%d}",
                "endDt": f"{deadline:%Y%m%d}",
                "link": f"www.kocca.kr/kocca/bbs/view/B0158950/{seq}.do",
                "content": "&lt;p&gt;콘텐츠 기업 &quot;정책금융&quot; 지원&lt;/p&gt;",
                "seq": str(seq),
            }
        if self._data_source == DataSource.KOCCA_PIMS.value:
            return {
                "intcNoSeq": f"3-{registered:%y}-D000-{index:03d}",
                "title": title,
                "cate": "모집공고",
                "regDt": f"{registered:%Y%m%d}",
                "startDt": f"{registered:%Y%m%d}",
                "endDt": f"{deadline:%Y%m%d}",
                "content": f"{field} 콘텐츠 제작 지원",
                "link": f"pims.kocca.kr/pblanc/pblancView.do?intcNoSeq={index}",
            }
        if self._data_source == DataSource.SEOUL_TP.value:
            board_no = f"{3900 + index:08d}"
            return {
                "boardNo": board_no,
                "title": title,
                "author": "기업지원팀",
                "registeredAt": f"{registered:%Y.%m.%d}",
                "viewCount": rng.randint(10, 900),
                "sourceUrl": f"https://www.seoultp.or.kr/user/nd19746.do?View&boardNo={board_no}&menuCode=www",
                "attachments": [{
                    "fileName": "공고문.hwp",
                    "downloadUrl": f"https://www.seoultp.or.kr/common/attachfile/attachfileDownload.do?attachNo={board_no}",
                }],
                "textContent": f"{field} 분야 {audience} 대상 지원사업을 안내합니다.",
            }
        if self._data_source == DataSource.GYEONGGI_TP.value:
            idx = str(172000 + index)
            return {
                "idx": idx,
                "title": title,
                "businessType": rng.choice(["기술지원", "사업화지원", "인력지원"]),
                "region": rng.choice(["경기도 전체", "수원시", "성남시, 안산시"]),
                "hostOrganization": "경기테크노파크",
                "applicationPeriod": f"{registered:%Y-%m-%d} ~ {deadline:%Y-%m-%d}",
                "sourceUrl": f"https://pms.gtp.or.kr/web/business/webBusinessView.do?idx={idx}",
            }
        return {
            "id": f"mock-{index}",
            "title": title,
            "description": f"{field} 지원",
            "category": field,
        }


def create_mock_connectors(records_per_fetch: int = 20) -> list[MockConnector]:
    """
    Create mock connectors for every known registry.

    Args:
        records_per_fetch: Number of records each connector generates

    Returns:
        One MockConnector per DataSource, in registry order
    """
    return [
        MockConnector(data_source=source, records_per_fetch=records_per_fetch)
        for source in DataSource
    ]
