"""Helpers to load and validate the judgment-service JSON contracts."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError

from .errors import ParseError

VERDICT_SCHEMA = "verdict.schema.json"
RELATED_ENTITIES_SCHEMA = "related_entities.schema.json"


def schemas_dir() -> Path:
    return Path(__file__).resolve().parent / "schemas"


@lru_cache(maxsize=None)
def load_schema(name: str) -> Dict[str, Any]:
    """Load and cache a bundled schema by file name."""
    return json.loads((schemas_dir() / name).read_text(encoding="utf-8"))


def format_errors(errors: Iterable[ValidationError]) -> str:
    """Turn jsonschema errors into a concise human-readable string."""
    parts = []
    for err in errors:
        location = ".".join(str(piece) for piece in err.absolute_path) or "<root>"
        parts.append(f"{location}: {err.message}")
    return "; ".join(parts)


def validate_payload(payload: Any, schema_name: str) -> Dict[str, Any]:
    """
    Validate a decoded service payload against a bundled schema.

    Raises ParseError with a readable message if validation fails.
    """
    validator = Draft202012Validator(load_schema(schema_name))
    errors = sorted(validator.iter_errors(payload), key=lambda e: [str(p) for p in e.absolute_path])
    if errors:
        raise ParseError(f"Schema validation failed: {format_errors(errors)}")
    return payload
