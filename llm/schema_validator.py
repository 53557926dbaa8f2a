"""
YAML document validator for prompt templates and config files.

Hand-written YAML goes wrong in predictable ways: typos in option names,
a string where a list belongs, an unknown trimming policy. This module:
  1. Parses the YAML text (an empty document is an empty mapping)
  2. Validates it against the template or config JSON schema
  3. Raises DocumentError naming the file and the offending field
"""

from typing import Any

import jsonschema
import yaml
from jsonschema import ValidationError as JsonSchemaValidationError

CONTEXT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "limit": {"type": ["integer", "null"], "minimum": 1},
        "reserve_output": {"type": "integer", "minimum": 0},
        "keep": {"enum": ["start", "end"]},
        "trim_args": {"type": "array", "items": {"type": "string"}},
        "array_priority": {"enum": ["first", "last", "equal"]},
    },
}

MODEL_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "model": {"type": "string"},
        "provider": {"enum": ["ollama", "openai", "together", "mock"]},
        "temperature": {"type": "number", "minimum": 0},
        "top_p": {"type": "number"},
        "top_k": {"type": "integer", "minimum": 1},
        "frequency_penalty": {"type": "number"},
        "presence_penalty": {"type": "number"},
        "stop": {"type": "array", "items": {"type": "string"}},
        "max_tokens": {"type": "integer", "minimum": 1},
        "format": {"enum": ["json"]},
        "context": CONTEXT_SCHEMA,
    },
}

TEMPLATE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "description": {"type": "string"},
        "system": {"type": "string"},
        "template": {"type": "string"},
        "template_path": {"type": "string"},
        "model": MODEL_SCHEMA,
        "options": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["name"],
                "additionalProperties": False,
                "properties": {
                    "name": {"type": "string", "pattern": "^[A-Za-z_][A-Za-z0-9_]*$"},
                    "description": {"type": "string"},
                    "type": {"enum": ["string", "number", "integer", "bool", "file"]},
                    "array": {"type": "boolean"},
                    "required": {"type": "boolean"},
                    "default": {},
                },
            },
        },
    },
    "anyOf": [{"required": ["template"]}, {"required": ["template_path"]}],
}

CONFIG_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "top_level": {"type": "boolean"},
        "tokenizer": {"type": "string"},
        "templates": {"type": "array", "items": {"type": "string"}},
        "model": MODEL_SCHEMA,
    },
}


class DocumentError(Exception):
    """Raised when a YAML document cannot be parsed or validated."""

    def __init__(self, message: str, source: str = "") -> None:
        super().__init__(f"{source}: {message}" if source else message)
        self.source = source


def parse_and_validate(raw_text: str, schema: dict, source: str = "") -> dict[str, Any]:
    """
    Parse YAML text into a validated dict.

    Raises DocumentError if:
      - text is not valid YAML
      - the top level is not a mapping
      - the mapping fails schema validation
    """
    try:
        parsed = yaml.safe_load(raw_text)
    except yaml.YAMLError as exc:
        raise DocumentError(f"YAML parse failed: {exc}", source=source) from exc

    if parsed is None:
        parsed = {}
    if not isinstance(parsed, dict):
        raise DocumentError(
            f"Expected a mapping at the top level, got {type(parsed).__name__}",
            source=source,
        )

    if schema:
        try:
            jsonschema.validate(instance=parsed, schema=schema)
        except JsonSchemaValidationError as exc:
            location = ".".join(str(part) for part in exc.absolute_path)
            where = f" at '{location}'" if location else ""
            raise DocumentError(
                f"Schema validation failed{where}: {exc.message}",
                source=source,
            ) from exc

    return parsed
