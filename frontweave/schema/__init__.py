"""Schema loading and lookup.

- schemas.py - Schema model, template bindings, validation rules
- loader.py  - file loading, $ref inlining, structural checks
"""

from .loader import load_schema, schema_from_dict, validate_structure
from .schemas import Schema, ValidationRules

__all__ = [
    "Schema",
    "ValidationRules",
    "load_schema",
    "schema_from_dict",
    "validate_structure",
]
