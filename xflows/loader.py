"""File loading for xflows flow definitions."""

import json
import os
from pathlib import Path
from typing import IO, Any

from ruamel.yaml import YAML

from xflows.compiler import compile_flow
from xflows.config import RuntimeConfig
from xflows.graph import CompiledGraph
from xflows.models import FileFormat, FlowDefinition, LoadError
from xflows.registry import Registry

FLOW_KEY = "flow"


def _reject_duplicates(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise ValueError(f"Duplicate key '{key}'")
        result[key] = value
    return result


class FileReader:
    """Simple file reading abstraction with format detection."""

    @staticmethod
    def detect_format(file_path: str | Path) -> FileFormat:
        suffix = Path(file_path).suffix.lower()
        if suffix in (".yml", ".yaml"):
            return FileFormat.YAML
        if suffix == ".json":
            return FileFormat.JSON
        raise LoadError(f"Unsupported file format: {suffix or '<none>'}")

    @staticmethod
    def read_file(file_path: str | Path) -> Any:
        """
        Read and parse file content based on extension.

        Raises:
            LoadError: For I/O or parsing errors
        """
        file_path = Path(file_path)

        # XFLOWS_ACTUAL_CWD lets wrappers resolve paths relative to the caller's directory
        if not file_path.is_absolute():
            actual_cwd = os.environ.get("XFLOWS_ACTUAL_CWD")
            file_path = Path(actual_cwd) / file_path if actual_cwd else file_path.resolve()

        if not file_path.exists():
            raise LoadError(f"File not found: {file_path}")

        file_format = FileReader.detect_format(file_path)
        try:
            with open(file_path, encoding="utf-8") as f:
                if file_format == FileFormat.YAML:
                    try:
                        return FileReader._parse_yaml(f)
                    except Exception as e:
                        raise LoadError(f"Error parsing YAML in {file_path}: {e}") from e
                try:
                    return FileReader._parse_json(f)
                except (json.JSONDecodeError, ValueError) as e:
                    raise LoadError(f"Error parsing JSON in {file_path}: {e}") from e

        except PermissionError as e:
            raise LoadError(f"Permission denied reading {file_path}") from e
        except UnicodeDecodeError as e:
            raise LoadError(f"Encoding error reading {file_path}: {e}") from e

    @staticmethod
    def _parse_yaml(file_handle: IO[str]) -> Any:
        """Parse YAML content. Duplicate keys are rejected by ruamel."""
        yaml = YAML(typ="safe", pure=True)
        return yaml.load(file_handle)

    @staticmethod
    def _parse_json(file_handle: IO[str]) -> Any:
        """Parse JSON content, rejecting duplicate keys."""
        return json.load(file_handle, object_pairs_hook=_reject_duplicates)


def load_flow(file_path: str | Path) -> FlowDefinition:
    """
    Load a flow definition from a YAML or JSON file.

    The file can contain either the definition at the root or wrapped as
    {"flow": {...}}.

    Raises:
        LoadError: If the file cannot be read or does not hold an object
    """
    data = FileReader.read_file(file_path)
    if not isinstance(data, dict):
        raise LoadError(f"{file_path} must contain an object")

    if FLOW_KEY in data and "states" not in data:
        data = data[FLOW_KEY]
        if not isinstance(data, dict):
            raise LoadError(f"'{FLOW_KEY}' in {file_path} must be an object")
    return data  # type: ignore[return-value]


def load_and_compile(
    file_path: str | Path,
    registry: Registry | None = None,
    config: RuntimeConfig | None = None,
) -> CompiledGraph:
    """
    Load and compile a flow file.

    Raises:
        LoadError: If the file cannot be read
        FlowCompileError: If the definition does not compile
    """
    return compile_flow(load_flow(file_path), registry, config)
