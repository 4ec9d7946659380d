"""Store path parsing."""

from delta_engine.parser.store_path import (
    MalformedStorePath,
    ParsedStorePath,
    is_version_fragment,
    parse_store_path,
    strip_store_prefix,
)

__all__ = [
    "MalformedStorePath",
    "ParsedStorePath",
    "is_version_fragment",
    "parse_store_path",
    "strip_store_prefix",
]
