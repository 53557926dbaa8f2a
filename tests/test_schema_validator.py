"""
Tests for YAML parsing and schema validation of templates and config files.
"""

import pytest
from llm.schema_validator import (
    CONFIG_SCHEMA,
    TEMPLATE_SCHEMA,
    DocumentError,
    parse_and_validate,
)

_SIMPLE_SCHEMA = {
    "type": "object",
    "required": ["code"],
    "properties": {
        "code": {"type": "string"},
        "explanation": {"type": "string"},
    },
}


def test_valid_yaml():
    result = parse_and_validate("code: x = 1\nexplanation: simple\n", _SIMPLE_SCHEMA)
    assert result == {"code": "x = 1", "explanation": "simple"}


def test_empty_document_is_empty_mapping():
    assert parse_and_validate("", {}) == {}


def test_invalid_yaml_raises():
    with pytest.raises(DocumentError, match="YAML parse failed"):
        parse_and_validate("key: [unclosed", _SIMPLE_SCHEMA)


def test_top_level_list_raises():
    with pytest.raises(DocumentError, match="mapping"):
        parse_and_validate("- a\n- b\n", {})


def test_schema_violation_names_field():
    with pytest.raises(DocumentError, match="'code'"):
        parse_and_validate("code: 123\n", _SIMPLE_SCHEMA)


def test_error_is_prefixed_with_source():
    with pytest.raises(DocumentError) as exc_info:
        parse_and_validate("code: 123\n", _SIMPLE_SCHEMA, source="prompts/x.yaml")
    assert str(exc_info.value).startswith("prompts/x.yaml: ")
    assert exc_info.value.source == "prompts/x.yaml"


def test_no_schema_skips_validation():
    assert parse_and_validate("anything: true\n", {}) == {"anything": True}


def test_template_schema_accepts_full_template():
    raw = """
description: Summarize
model:
  model: llama3.1:8b
  temperature: 0.2
  context:
    limit: 2048
    reserve_output: 128
    keep: end
    trim_args: [body]
    array_priority: last
options:
  - name: body
    type: file
    required: true
template: "{body}"
"""
    result = parse_and_validate(raw, TEMPLATE_SCHEMA)
    assert result["model"]["context"]["array_priority"] == "last"


@pytest.mark.parametrize(
    "raw",
    [
        "description: no body\n",
        "template: x\nmodel:\n  context:\n    array_priority: middle\n",
        "template: x\nmodel:\n  context:\n    unknown_key: 1\n",
        "template: x\noptions:\n  - name: bad-name\n",
        "template: x\noptions:\n  - name: ok\n    type: date\n",
        "template: x\nmodel:\n  provider: anthropic\n",
    ],
)
def test_template_schema_rejects(raw):
    with pytest.raises(DocumentError):
        parse_and_validate(raw, TEMPLATE_SCHEMA)


def test_config_schema():
    raw = "top_level: true\ntokenizer: gpt2\ntemplates: [prompts]\nmodel:\n  model: gpt-4o\n"
    assert parse_and_validate(raw, CONFIG_SCHEMA)["top_level"] is True


def test_config_schema_rejects_unknown_keys():
    with pytest.raises(DocumentError, match="templatez"):
        parse_and_validate("templatez: [x]\n", CONFIG_SCHEMA)


def test_template_schema_accepts_sampling_and_format():
    raw = "template: x\nmodel:\n  provider: together\n  top_k: 40\n  format: json\n"
    result = parse_and_validate(raw, TEMPLATE_SCHEMA)
    assert result["model"] == {"provider": "together", "top_k": 40, "format": "json"}


@pytest.mark.parametrize(
    "model_block",
    ["  format: xml\n", "  top_k: 0\n", "  top_k: many\n"],
)
def test_template_schema_rejects_bad_sampling(model_block):
    with pytest.raises(DocumentError):
        parse_and_validate("template: x\nmodel:\n" + model_block, TEMPLATE_SCHEMA)
