# Copyright 2026 FhirMeta Contributors
# SPDX-License-Identifier: Apache-2.0

"""Tests for the engine configuration module."""

from pathlib import Path

import pytest

from fhirmeta.codec import decode_json
from fhirmeta.config import (
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_REPEAT,
    EngineConfig,
    EngineConfigError,
    build_registry,
    load_engine_config,
)
from fhirmeta.registry import default_registry

# ###############
# Helpers
# ###############


def _write_config(tmp_path: Path, content: str) -> Path:
    """Write an engine config file and return its path."""
    config_file = tmp_path / "fhirmeta.yaml"
    config_file.write_text(content, encoding="utf-8")
    return config_file


# ###############
# Normal Cases
# ###############


def test_defaults() -> None:
    """A default EngineConfig carries the documented limits."""
    config = EngineConfig()
    assert config.max_depth == DEFAULT_MAX_DEPTH == 64
    assert config.max_repeat == DEFAULT_MAX_REPEAT == 10_000
    assert config.preserve_unknown is True
    assert config.schema_paths == []


def test_empty_file_gives_defaults(tmp_path: Path) -> None:
    """An empty config file parses to the defaults."""
    assert load_engine_config(_write_config(tmp_path, "")) == EngineConfig()


def test_full_config(tmp_path: Path) -> None:
    """Every key is parsed and relative schema paths resolve against the file's directory."""
    content = """\
max-depth: 12
max-repeat: 500
preserve-unknown: false
schema-paths:
  - schemas
  - /opt/fhir/extra.yaml
"""
    config = load_engine_config(_write_config(tmp_path, content))
    assert config.max_depth == 12
    assert config.max_repeat == 500
    assert config.preserve_unknown is False
    assert config.schema_paths == [tmp_path / "schemas", Path("/opt/fhir/extra.yaml")]


def test_build_registry_without_schema_paths() -> None:
    """Without extra schemas the shared bundled registry is used."""
    assert build_registry(EngineConfig()) is default_registry()


def test_build_registry_with_schema_paths(tmp_path: Path) -> None:
    """Extra schemas are loaded next to the bundled definitions."""
    schemas = tmp_path / "schemas"
    schemas.mkdir()
    (schemas / "gadget.yaml").write_text(
        "types:\n  - name: Gadget\n    kind: resource\n", encoding="utf-8"
    )
    config = load_engine_config(_write_config(tmp_path, "schema-paths: [schemas]\n"))
    registry = build_registry(config)
    assert "Gadget" in registry
    assert "Task" in registry


def test_registry_with_schema_paths_is_built_once(tmp_path: Path) -> None:
    """Decodes sharing a schema-path configuration share one registry."""
    (tmp_path / "gadget.yaml").write_text(
        "types:\n  - name: Gadget\n    kind: resource\n", encoding="utf-8"
    )
    config = EngineConfig(schema_paths=[tmp_path])
    first = decode_json('{"resourceType": "Gadget"}', config=config).raise_on_error()
    second = decode_json('{"resourceType": "Gadget"}', config=config).raise_on_error()
    assert first.registry is second.registry
    assert build_registry(EngineConfig(schema_paths=[tmp_path])) is first.registry


# ###############
# Error Cases
# ###############


def test_missing_file(tmp_path: Path) -> None:
    """A missing config file raises EngineConfigError."""
    with pytest.raises(EngineConfigError, match="not found"):
        load_engine_config(tmp_path / "absent.yaml")


def test_invalid_yaml(tmp_path: Path) -> None:
    """Malformed YAML raises EngineConfigError naming the file."""
    with pytest.raises(EngineConfigError, match="Invalid YAML"):
        load_engine_config(_write_config(tmp_path, "max-depth: [\n"))


def test_not_a_mapping(tmp_path: Path) -> None:
    """A top-level list is rejected."""
    with pytest.raises(EngineConfigError, match="mapping"):
        load_engine_config(_write_config(tmp_path, "- max-depth\n"))


def test_unknown_key(tmp_path: Path) -> None:
    """Unrecognised keys are rejected."""
    with pytest.raises(EngineConfigError, match="'max-width'"):
        load_engine_config(_write_config(tmp_path, "max-width: 3\n"))


@pytest.mark.parametrize("value", ["0", "-1", "ten", "true", "2.5"])
def test_invalid_limit(tmp_path: Path, value: str) -> None:
    """Limits must be integers of at least 1."""
    with pytest.raises(EngineConfigError, match="max-repeat"):
        load_engine_config(_write_config(tmp_path, f"max-repeat: {value}\n"))


def test_preserve_unknown_must_be_boolean(tmp_path: Path) -> None:
    """preserve-unknown only accepts YAML booleans."""
    with pytest.raises(EngineConfigError, match="preserve-unknown"):
        load_engine_config(_write_config(tmp_path, "preserve-unknown: sometimes\n"))


def test_schema_paths_must_be_strings(tmp_path: Path) -> None:
    """Each schema path entry must be a string."""
    with pytest.raises(EngineConfigError, match=r"schema-paths\[1\]"):
        load_engine_config(_write_config(tmp_path, "schema-paths: [a.yaml, 3]\n"))
