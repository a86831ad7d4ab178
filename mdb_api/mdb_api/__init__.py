"""MDB API control plane."""

__version__ = "0.3.0"
