"""
Common utilities for versioned-state.

Modules:
- hashing: 32-bit rolling string fingerprint (base-36 output)
- schema_shape: canonical rendering of a schema's field shape
"""

from .hashing import simple_hash
from .schema_shape import extract_shape, hash_schema, node_from_annotation, type_descriptor

__all__ = [
    "extract_shape",
    "hash_schema",
    "node_from_annotation",
    "simple_hash",
    "type_descriptor",
]
