from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml


def _read_structured(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as handle:
        if path.suffix in {".yaml", ".yml"}:
            return yaml.safe_load(handle)
        return json.load(handle)


def _load_data(path: Path, default: dict[str, Any]) -> dict[str, Any]:
    if not path.exists():
        return default
    try:
        data = _read_structured(path)
        return data if isinstance(data, dict) else default
    except (OSError, json.JSONDecodeError, yaml.YAMLError):
        return default


def _load_data_with_error(
    path: Path,
    default: dict[str, Any],
) -> tuple[dict[str, Any], str | None]:
    """
    Load JSON/YAML and return (data, error_message).

    Unlike _load_data(), this reports parse/IO failures so callers can tell a
    missing file apart from a broken one.
    """
    if not path.exists():
        return default, None
    try:
        data = _read_structured(path)
        if not isinstance(data, dict):
            return default, f"{path.name}: expected object, got {type(data).__name__}"
        return data, None
    except OSError as exc:
        return default, f"{path.name}: {exc.__class__.__name__}: {exc}"
    except json.JSONDecodeError as exc:
        return default, f"{path.name}: JSONDecodeError: {exc}"
    except yaml.YAMLError as exc:
        return default, f"{path.name}: YAMLError: {exc}"


def _load_task_records(path: Path) -> list[dict[str, Any]]:
    """Read external task records from a YAML/JSON file.

    Accepts either a top-level list or an object with a ``tasks`` list.

    Raises:
        ValueError: If the file cannot be parsed or has the wrong shape.
    """
    try:
        data = _read_structured(path)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ValueError(f"{path.name}: {exc.__class__.__name__}: {exc}") from exc
    if isinstance(data, dict):
        data = data.get("tasks")
    if not isinstance(data, list):
        raise ValueError(f"{path.name}: expected a list of tasks")
    records = [item for item in data if isinstance(item, dict)]
    if len(records) != len(data):
        raise ValueError(f"{path.name}: every task entry must be an object")
    return records
