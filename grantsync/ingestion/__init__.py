"""Program ingestion: registry connectors, retry layer and normalization."""

from grantsync.ingestion.schemas import DataSource, Program

__all__ = [
    "DataSource",
    "Program",
]
