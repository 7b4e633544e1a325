"""JSON document storage helpers."""

from .json_documents import read_json, write_json_atomic

__all__ = ["read_json", "write_json_atomic"]
