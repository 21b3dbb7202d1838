"""Tests for the Prometheus metrics collector."""

from prometheus_client import REGISTRY

from grantsync.ingestion.schemas import DataSource
from grantsync.observability.metrics import get_metrics


def _sample(name: str, **labels) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestMetricsCollector:
    def test_singleton(self):
        assert get_metrics() is get_metrics()

    def test_record_source_sync(self):
        metrics = get_metrics()
        before = _sample("grantsync_source_sync_total", data_source="K-Startup", status="success")
        upserted = _sample("grantsync_programs_upserted_total", data_source="K-Startup")

        metrics.record_source_sync(DataSource.KSTARTUP, success=True, count=7, duration=1.5)

        assert _sample("grantsync_source_sync_total", data_source="K-Startup", status="success") == before + 1
        assert _sample("grantsync_programs_upserted_total", data_source="K-Startup") == upserted + 7
        assert _sample("grantsync_last_sync_success", data_source="K-Startup") == 1

    def test_failed_sync_sets_gauge_to_zero(self):
        get_metrics().record_source_sync("기업마당", success=False)

        assert _sample("grantsync_last_sync_success", data_source="기업마당") == 0

    def test_record_skipped_and_retry(self):
        metrics = get_metrics()
        skipped = _sample("grantsync_programs_skipped_total", data_source="KOCCA-PIMS", reason="missing_id")
        retries = _sample("grantsync_api_retries_total", data_source="KOCCA-PIMS")

        metrics.record_skipped("KOCCA-PIMS", "missing_id")
        metrics.record_retry(DataSource.KOCCA_PIMS)

        assert _sample("grantsync_programs_skipped_total", data_source="KOCCA-PIMS", reason="missing_id") == skipped + 1
        assert _sample("grantsync_api_retries_total", data_source="KOCCA-PIMS") == retries + 1

    def test_record_matching(self):
        before = _sample("grantsync_matching_runs_total", mode="cached")

        get_metrics().record_matching("cached", latency=0.01)

        assert _sample("grantsync_matching_runs_total", mode="cached") == before + 1

