"""Record validation and generic single-table DML."""

from mdb_engine.records.store import RecordStore, parse_query_filters
from mdb_engine.records.validator import RecordValidator

__all__ = ["RecordStore", "RecordValidator", "parse_query_filters"]
