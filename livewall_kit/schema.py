"""Schema loading and validation helpers for live wall payloads."""
from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

from jsonschema import Draft202012Validator

_SCHEMA_PATH = Path(__file__).with_name("livewall.schema.json")


@lru_cache(maxsize=1)
def load_schema() -> Mapping[str, Any]:
    """Load and cache the live wall JSON schema as a mapping."""

    return json.loads(_SCHEMA_PATH.read_text("utf-8"))


@lru_cache(maxsize=None)
def _validator(definition: str) -> Draft202012Validator:
    schema = load_schema()
    if definition not in schema["$defs"]:
        raise KeyError(f"Unknown schema definition: {definition}")
    return Draft202012Validator({**schema, "$ref": f"#/$defs/{definition}"})


def validate_event(name: str, payload: Any) -> None:
    """Validate a push payload against the definition for canonical event *name*."""

    _validator(name).validate(payload)


def validate_snapshot(payload: Any) -> None:
    """Validate a snapshot pull response body."""

    _validator("snapshot").validate(payload)
