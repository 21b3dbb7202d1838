"""
Normalization of raw registry records into the canonical Program shape.

``normalize(data_source, raw)`` is pure: no I/O, no clock reads unless the
caller omits ``now``. Each registry has a ``SourceRules`` subclass that knows
its field names; unknown registries fall back to the generic rules.

Rules of thumb shared by all registries:
- The external id is derived from source fields, never generated.
- Missing optional fields become None or the documented list defaults.
- The raw record is kept verbatim in ``raw_data``.
"""

import html
import re
from datetime import datetime, timedelta, timezone
from typing import Any

from grantsync.errors import MissingExternalIdError
from grantsync.ingestion.schemas import DataSource, Program

# Registries publish local (KST) timestamps without an offset
KST = timezone(timedelta(hours=9), name="KST")

DEFAULT_TITLE = "제목 없음"
NATIONWIDE = "전국"
ALL_AUDIENCES = "전체"

REGIONS = (
    "서울", "부산", "대구", "인천", "광주", "대전", "울산", "세종", "경기",
    "강원", "충북", "충남", "전북", "전남", "경북", "경남", "제주",
)
_REGION_PATTERN = re.compile("(" + "|".join(REGIONS) + ")")
_BRACKETED_REGION_PATTERN = re.compile(r"\[(" + "|".join(REGIONS) + r")\]")

_LIST_SPLIT = re.compile(r"[,/]+")
_WORD_SPLIT = re.compile(r"[\s,/]+")
_BRACKETED = re.compile(r"\[([^\]]+)\]")

_DATE_FORMATS = (
    "%Y%m%d",
    "%Y-%m-%d",
    "%Y.%m.%d",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%Y%m%d%H%M%S",
)

GENERIC_ID_FIELDS = ("id", "announcementId", "bizId", "noticeId")
GENERIC_TITLE_FIELDS = ("pblancNm", "biz_pbanc_nm", "title", "announcementTitle")
GENERIC_DESCRIPTION_FIELDS = ("bsnsSumryCn", "description", "content")
GENERIC_CATEGORY_FIELDS = ("pldirSportRealmLclasCodeNm", "supt_biz_clsfc", "cate", "category")


# ── Field helpers ─────────────────────────────────────────────────────


def text(raw: dict[str, Any], *fields: str) -> str | None:
    """First non-blank value among ``fields``, as a stripped string."""
    for name in fields:
        value = raw.get(name)
        if value is None:
            continue
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def split_list(value: str | None) -> list[str]:
    """Split a comma/slash separated field into trimmed, non-empty parts."""
    if not value:
        return []
    return [part.strip() for part in _LIST_SPLIT.split(value) if part.strip()]


def title_words(title: str | None) -> list[str]:
    """Words of a title longer than one character."""
    if not title:
        return []
    return [w for w in _WORD_SPLIT.split(title) if len(w) > 1]


def dedupe(values: list[str], limit: int | None = None) -> list[str]:
    """Order-preserving de-duplication with an optional cap."""
    unique = list(dict.fromkeys(v for v in values if v))
    return unique[:limit] if limit is not None else unique


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=KST)
    return value.astimezone(timezone.utc)


def parse_date(value: Any) -> datetime | None:
    """
    Parse registry date strings (YYYYMMDD, ISO-like, dotted) to UTC datetimes.

    Naive values are taken as KST. Returns None for anything unparseable.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return _to_utc(value)

    candidate = str(value).strip()
    if not candidate:
        return None

    for fmt in _DATE_FORMATS:
        try:
            return _to_utc(datetime.strptime(candidate, fmt))
        except ValueError:
            continue

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    return _to_utc(parsed)


def split_period(value: str | None) -> tuple[datetime | None, datetime | None]:
    """Parse an application period such as ``"20251201 ~ 20251231"``."""
    if not value:
        return None, None
    parts = [p.strip() for p in value.split("~")]
    start = parse_date(parts[0]) if parts and parts[0] else None
    end = parse_date(parts[1]) if len(parts) > 1 and parts[1] else None
    return start, end


def absolute_url(value: str | None, host: str) -> str | None:
    """Prefix relative paths with ``host``, scheme-less hosts with https://."""
    if not value:
        return None
    if value.startswith(("http://", "https://")):
        return value
    if value.startswith("/"):
        return f"https://{host}{value}"
    return f"https://{value}"


# ── Per-source rules ──────────────────────────────────────────────────


class SourceRules:
    """Generic field mapping, used for registries without dedicated rules."""

    id_fields: tuple[str, ...] = GENERIC_ID_FIELDS
    title_fields: tuple[str, ...] = GENERIC_TITLE_FIELDS
    description_fields: tuple[str, ...] = GENERIC_DESCRIPTION_FIELDS
    category_fields: tuple[str, ...] = GENERIC_CATEGORY_FIELDS
    keyword_limit = 15

    def external_id(self, raw: dict[str, Any]) -> str | None:
        return text(raw, *self.id_fields)

    def title(self, raw: dict[str, Any]) -> str:
        return text(raw, *self.title_fields) or DEFAULT_TITLE

    def description(self, raw: dict[str, Any]) -> str | None:
        return text(raw, *self.description_fields)

    def category(self, raw: dict[str, Any]) -> str | None:
        return text(raw, *self.category_fields)

    def target_audience(self, raw: dict[str, Any]) -> list[str]:
        return split_list(text(raw, "targetAudience")) or [ALL_AUDIENCES]

    def target_location(self, raw: dict[str, Any]) -> list[str]:
        return split_list(text(raw, "targetLocation")) or [NATIONWIDE]

    def keywords(self, raw: dict[str, Any]) -> list[str]:
        return dedupe(title_words(self.title(raw)), self.keyword_limit)

    def budget_range(self, raw: dict[str, Any]) -> str | None:
        return text(raw, "budgetRange")

    def registered_at(self, raw: dict[str, Any]) -> datetime | None:
        return parse_date(text(raw, "registeredAt", "regDate", "regDt"))

    def start_date(self, raw: dict[str, Any]) -> datetime | None:
        return parse_date(text(raw, "startDate", "startDt"))

    def deadline(self, raw: dict[str, Any]) -> datetime | None:
        return parse_date(text(raw, "deadline", "endDt"))

    def source_url(self, raw: dict[str, Any]) -> str | None:
        return text(raw, "sourceUrl", "link", "url")

    def attachment_url(self, raw: dict[str, Any]) -> str | None:
        return None


class BizinfoRules(SourceRules):
    """기업마당: JSON with pblanc* fields and an application period string."""

    id_fields = ("pblancId",) + GENERIC_ID_FIELDS
    host = "www.bizinfo.go.kr"

    def target_audience(self, raw: dict[str, Any]) -> list[str]:
        return split_list(text(raw, "trgetNm")) or [ALL_AUDIENCES]

    def target_location(self, raw: dict[str, Any]) -> list[str]:
        regions: list[str] = []
        agency = text(raw, "jrsdInsttNm")
        if agency:
            match = _REGION_PATTERN.search(agency)
            if match:
                regions.append(match.group(1))
        title = text(raw, "pblancNm")
        if title:
            match = _BRACKETED_REGION_PATTERN.search(title)
            if match:
                regions.append(match.group(1))
        return dedupe(regions) or [NATIONWIDE]

    def keywords(self, raw: dict[str, Any]) -> list[str]:
        words = split_list(text(raw, "hashtags"))
        words += [
            w for w in (
                text(raw, "pldirSportRealmLclasCodeNm"),
                text(raw, "pldirSportRealmMlsfcCodeNm"),
            ) if w
        ]
        return dedupe(words, self.keyword_limit)

    def registered_at(self, raw: dict[str, Any]) -> datetime | None:
        return parse_date(text(raw, "creatPnttm"))

    def start_date(self, raw: dict[str, Any]) -> datetime | None:
        return split_period(text(raw, "reqstBeginEndDe"))[0]

    def deadline(self, raw: dict[str, Any]) -> datetime | None:
        return split_period(text(raw, "reqstBeginEndDe"))[1]

    def source_url(self, raw: dict[str, Any]) -> str | None:
        return absolute_url(text(raw, "pblancUrl"), self.host)

    def attachment_url(self, raw: dict[str, Any]) -> str | None:
        # flpthNm lists files separated by "@"; the first is the notice itself
        paths = text(raw, "flpthNm")
        if not paths:
            return None
        first = paths.split("@")[0].strip()
        return absolute_url(first, self.host) if first else None


class KStartupRules(SourceRules):
    """K-Startup: flattened XML columns with snake_case names."""

    id_fields = ("pbanc_sn",) + GENERIC_ID_FIELDS

    # (label, raw field) pairs rendered into the description, in order
    DESCRIPTION_SECTIONS = (
        ("공고 상세", "pbanc_ctnt"),
        ("지원 대상", "aply_trgt_ctnt"),
        ("연령 제한", "biz_trgt_age"),
        ("지원 제한 대상", "aply_excl_trgt_ctnt"),
        ("주관 기관", "pbanc_ntrp_nm"),
        ("지원 분야", "supt_biz_clsfc"),
    )

    def description(self, raw: dict[str, Any]) -> str | None:
        sections = [
            f"{label}: {value}"
            for label, name in self.DESCRIPTION_SECTIONS
            if (value := text(raw, name))
        ]
        return "\n\n".join(sections) if sections else None

    def target_audience(self, raw: dict[str, Any]) -> list[str]:
        return split_list(text(raw, "aply_trgt")) or [ALL_AUDIENCES]

    def target_location(self, raw: dict[str, Any]) -> list[str]:
        return split_list(text(raw, "supt_regin", "aply_trgt_area")) or [NATIONWIDE]

    def keywords(self, raw: dict[str, Any]) -> list[str]:
        words = title_words(text(raw, "biz_pbanc_nm"))
        classification = text(raw, "supt_biz_clsfc")
        if classification:
            words.append(classification)
        words += split_list(text(raw, "aply_trgt"))
        return dedupe(words, self.keyword_limit)

    def budget_range(self, raw: dict[str, Any]) -> str | None:
        return text(raw, "sprt_dgr", "budgetRange")

    def registered_at(self, raw: dict[str, Any]) -> datetime | None:
        return parse_date(text(raw, "pbanc_rcpt_bgng_dt", "rcpt_bgng_dt", "pbanc_rgst_dt"))

    def start_date(self, raw: dict[str, Any]) -> datetime | None:
        return parse_date(text(raw, "pbanc_rcpt_bgng_dt", "rcpt_bgng_dt"))

    def deadline(self, raw: dict[str, Any]) -> datetime | None:
        return parse_date(text(raw, "pbanc_rcpt_end_dt", "rcpt_end_dt"))

    def source_url(self, raw: dict[str, Any]) -> str | None:
        return text(raw, "detl_pg_url", "biz_pbanc_url")


class KoccaRules(SourceRules):
    """Shared KOCCA mapping: nationwide, content-industry audience."""

    keyword_limit = 10
    extra_keywords: tuple[str, ...] = ("콘텐츠", "문화")
    host = "www.kocca.kr"

    def target_audience(self, raw: dict[str, Any]) -> list[str]:
        return ["콘텐츠산업", "문화산업"]

    def target_location(self, raw: dict[str, Any]) -> list[str]:
        return [NATIONWIDE]

    def keywords(self, raw: dict[str, Any]) -> list[str]:
        words = title_words(text(raw, "title"))
        words += [w for w in (text(raw, "cate"), text(raw, "genre")) if w]
        words += list(self.extra_keywords)
        return dedupe(words, self.keyword_limit)

    def source_url(self, raw: dict[str, Any]) -> str | None:
        return absolute_url(text(raw, "link"), self.host)


class KoccaPimsRules(KoccaRules):
    id_fields = ("intcNoSeq",) + GENERIC_ID_FIELDS

    def registered_at(self, raw: dict[str, Any]) -> datetime | None:
        return parse_date(text(raw, "regDt"))

    def start_date(self, raw: dict[str, Any]) -> datetime | None:
        return parse_date(text(raw, "startDt"))

    def deadline(self, raw: dict[str, Any]) -> datetime | None:
        return parse_date(text(raw, "endDt"))


class KoccaFinanceRules(KoccaRules):
    id_fields = ("seq",) + GENERIC_ID_FIELDS
    extra_keywords = ("금융", "투자", "콘텐츠")

    def description(self, raw: dict[str, Any]) -> str | None:
        # The board double-escapes its HTML body; keep the markup, decode entities
        content = text(raw, "content")
        return html.unescape(content) if content else None

    def registered_at(self, raw: dict[str, Any]) -> datetime | None:
        return parse_date(text(raw, "regDate"))

    def start_date(self, raw: dict[str, Any]) -> datetime | None:
        return None

    def deadline(self, raw: dict[str, Any]) -> datetime | None:
        return parse_date(text(raw, "endDt"))


class SeoulTPRules(SourceRules):
    """서울테크노파크: crawled board rows, optionally merged with the post page."""

    id_fields = ("boardNo",) + GENERIC_ID_FIELDS
    description_fields = ("textContent",)

    AUDIENCE_TERMS = ("중소기업", "스타트업", "벤처", "소상공인", "예비창업자")
    KEYWORD_TERMS = (
        "창업", "기술", "R&D", "수출", "마케팅", "컨설팅",
        "입주", "지원", "교육", "훈련", "ESG", "디지털",
    )

    def target_audience(self, raw: dict[str, Any]) -> list[str]:
        title = text(raw, "title") or ""
        return [t for t in self.AUDIENCE_TERMS if t in title] or [ALL_AUDIENCES]

    def target_location(self, raw: dict[str, Any]) -> list[str]:
        return ["서울"]

    def keywords(self, raw: dict[str, Any]) -> list[str]:
        title = text(raw, "title") or ""
        words = [w.strip() for w in _BRACKETED.findall(title) if w.strip()]
        words += [t for t in self.KEYWORD_TERMS if t in title]
        return dedupe(words, self.keyword_limit)

    def registered_at(self, raw: dict[str, Any]) -> datetime | None:
        return parse_date(text(raw, "registeredAt"))

    def start_date(self, raw: dict[str, Any]) -> datetime | None:
        return None

    def deadline(self, raw: dict[str, Any]) -> datetime | None:
        # Periods are only stated inside the notice body or its images
        return None

    def attachment_url(self, raw: dict[str, Any]) -> str | None:
        for attachment in raw.get("attachments") or []:
            url = attachment.get("downloadUrl")
            if url:
                return url
        return None


class GyeonggiTPRules(SourceRules):
    """경기테크노파크: crawled business list rows with a resolved region."""

    id_fields = ("idx",) + GENERIC_ID_FIELDS
    category_fields = ("businessType",)

    def target_audience(self, raw: dict[str, Any]) -> list[str]:
        business_type = text(raw, "businessType")
        return [business_type] if business_type else [ALL_AUDIENCES]

    def target_location(self, raw: dict[str, Any]) -> list[str]:
        return split_list(text(raw, "region")) or ["경기"]

    def keywords(self, raw: dict[str, Any]) -> list[str]:
        words = [w for w in (text(raw, "businessType"),) if w]
        words += [w.strip() for w in _BRACKETED.findall(text(raw, "title") or "") if w.strip()]
        host = text(raw, "hostOrganization")
        if host:
            words.append(host)
        return dedupe(words, self.keyword_limit)

    def registered_at(self, raw: dict[str, Any]) -> datetime | None:
        return split_period(text(raw, "applicationPeriod"))[0]

    def start_date(self, raw: dict[str, Any]) -> datetime | None:
        return split_period(text(raw, "applicationPeriod"))[0]

    def deadline(self, raw: dict[str, Any]) -> datetime | None:
        return split_period(text(raw, "applicationPeriod"))[1]


RULES: dict[str, SourceRules] = {
    DataSource.BIZINFO.value: BizinfoRules(),
    DataSource.KSTARTUP.value: KStartupRules(),
    DataSource.KOCCA_PIMS.value: KoccaPimsRules(),
    DataSource.KOCCA_FINANCE.value: KoccaFinanceRules(),
    DataSource.SEOUL_TP.value: SeoulTPRules(),
    DataSource.GYEONGGI_TP.value: GyeonggiTPRules(),
}

_GENERIC_RULES = SourceRules()


def rules_for(data_source: str) -> SourceRules:
    """Rules registered for ``data_source``, or the generic rules."""
    return RULES.get(data_source, _GENERIC_RULES)


# ── Entry point ───────────────────────────────────────────────────────


def normalize(
    data_source: DataSource | str,
    raw: dict[str, Any],
    now: datetime | None = None,
) -> Program:
    """
    Map one raw registry record to a Program.

    Args:
        data_source: Registry the record came from
        raw: Raw record as returned by the connector
        now: Fallback registration time (defaults to the current UTC time)

    Returns:
        Program without a catalog id

    Raises:
        MissingExternalIdError: If no id field is present
    """
    source = data_source.value if isinstance(data_source, DataSource) else data_source
    rules = rules_for(source)

    external_id = rules.external_id(raw)
    if not external_id:
        raise MissingExternalIdError(source)

    deadline = rules.deadline(raw)

    return Program(
        data_source=source,
        external_id=external_id,
        title=rules.title(raw),
        description=rules.description(raw),
        category=rules.category(raw),
        target_audience=rules.target_audience(raw),
        target_location=rules.target_location(raw),
        keywords=rules.keywords(raw),
        budget_range=rules.budget_range(raw),
        deadline=deadline,
        source_url=rules.source_url(raw),
        attachment_url=rules.attachment_url(raw),
        registered_at=rules.registered_at(raw) or now or datetime.now(timezone.utc),
        start_date=rules.start_date(raw),
        end_date=deadline,
        raw_data=dict(raw),
    )
