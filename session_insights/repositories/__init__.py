"""File-backed stores for facets and pipeline artifacts."""

from .artifacts import PipelineArtifacts, read_json, write_json_atomic
from .facets import FacetCache, FacetParseError, cache_key, extract_json

__all__ = [
    "PipelineArtifacts",
    "read_json",
    "write_json_atomic",
    "FacetCache",
    "FacetParseError",
    "cache_key",
    "extract_json",
]
