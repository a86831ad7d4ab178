"""Schema mutation engine and the physical DDL store it drives."""

from mdb_engine.schema.ddl import PhysicalStore, build_table, map_store_error
from mdb_engine.schema.engine import SchemaEngine, TableChanges

__all__ = ["PhysicalStore", "SchemaEngine", "TableChanges", "build_table", "map_store_error"]
