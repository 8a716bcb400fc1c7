"""JSON Schema validation infrastructure.

Provides schema validation for ledger records with:
- Automatic schema resolution via $ref
- Cross-reference registry for all shipped schemas
- Cached validators
- Clear error reporting
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, List

from jsonschema import Draft202012Validator
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from certledger.core import SCHEMAS_DIR, load_json

ASSET_SCHEMA = "asset.schema.json"


@lru_cache(maxsize=4)
def _schema_registry(schemas_dir: Path = SCHEMAS_DIR) -> Registry:
    """Build a schema registry for every ``*.schema.json`` in ``schemas_dir``.

    This enables $ref resolution across the schema corpus.
    """
    if not schemas_dir.is_dir():
        return Registry()

    resources = []
    for schema_path in sorted(schemas_dir.glob("*.schema.json")):
        schema = load_json(schema_path)
        if not isinstance(schema, dict):
            continue

        schema_id = schema.get("$id", "")
        if not schema_id:
            schema_id = f"https://schemas.certledger.dev/{schema_path.name}"

        resource = Resource.from_contents(schema, default_specification=DRAFT202012)
        resources.append((schema_id, resource))

    return Registry().with_resources(resources)


@lru_cache(maxsize=8)
def schema_validator(
    schema_name: str,
    schemas_dir: Path = SCHEMAS_DIR,
) -> Draft202012Validator:
    """Create a validator for a shipped schema file.

    Args:
        schema_name: File name under the schemas directory
        schemas_dir: Directory holding the schema corpus

    Returns:
        A configured Draft202012Validator
    """
    schema = load_json(schemas_dir / schema_name)
    registry = _schema_registry(schemas_dir)
    return Draft202012Validator(schema, registry=registry)


def validate_against_schema(obj: Any, schema_name: str) -> List[str]:
    """Validate an object against a shipped schema.

    Returns:
        List of validation error messages (empty if valid)
    """
    validator = schema_validator(schema_name)
    return [
        f"{error.json_path}: {error.message}"
        for error in sorted(validator.iter_errors(obj), key=lambda e: e.json_path)
    ]
