"""MDB core engine: tenant table schemas and their metadata stores."""

__version__ = "0.3.0"
