"""Load optional engine configuration from `.gantt_progress/config.yaml`."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from .constants import (
    CONFIG_FILE,
    DEFAULT_LOG_LEVEL,
    DEFAULT_NEW_CHILD_DURATION,
    DEFAULT_NEW_CHILD_TEXT,
    DEFAULT_NEW_TASK_DURATION,
    DEFAULT_NEW_TASK_TEXT,
    DEFAULT_PROPAGATE_TO_ANCESTORS,
    STATE_DIR_NAME,
    VALID_LOG_LEVELS,
)
from .io_utils import _load_data_with_error


def load_engine_config(project_dir: Path) -> tuple[dict[str, Any], str | None]:
    """Load the optional engine config file.

    Args:
        project_dir: Project root directory.

    Returns:
        A tuple of `(config, error_message)`. If the file is missing, returns `({}, None)`.
    """
    project_dir = project_dir.resolve()
    state_dir = project_dir / STATE_DIR_NAME
    path = state_dir / CONFIG_FILE
    if not path.exists():
        json_path = path.with_suffix(".json")
        if not json_path.exists():
            return {}, None
        path = json_path
    data, err = _load_data_with_error(path, {})
    if err:
        return {}, err
    return data, None


def _get_nested(config: dict[str, Any], *keys: str) -> Any:
    cur: Any = config
    for key in keys:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
    return cur


def get_log_level(config: dict[str, Any]) -> str:
    """Return the configured loguru level, or the default when unset/invalid."""
    raw = config.get("log_level")
    if isinstance(raw, str) and raw.upper() in VALID_LOG_LEVELS:
        return raw.upper()
    return DEFAULT_LOG_LEVEL


def get_propagate_to_ancestors(config: dict[str, Any]) -> bool:
    """Whether a recompute should also refresh every further summary ancestor.

    Args:
        config: Engine configuration dictionary.

    Returns:
        The `recompute.propagate_to_ancestors` flag, defaulting to False.
    """
    raw = _get_nested(config, "recompute", "propagate_to_ancestors")
    if isinstance(raw, bool):
        return raw
    return DEFAULT_PROPAGATE_TO_ANCESTORS


def _task_defaults(config: dict[str, Any], key: str, text: str, duration: float) -> dict[str, Any]:
    raw = _get_nested(config, key)
    out: dict[str, Any] = {"text": text, "duration": duration}
    if not isinstance(raw, dict):
        return out
    if isinstance(raw.get("text"), str) and raw["text"].strip():
        out["text"] = raw["text"].strip()
    value = raw.get("duration")
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0:
        out["duration"] = value
    return out


def get_new_task_defaults(config: dict[str, Any]) -> dict[str, Any]:
    """Fields used for tasks created from the toolbar."""
    return _task_defaults(config, "new_task", DEFAULT_NEW_TASK_TEXT, DEFAULT_NEW_TASK_DURATION)


def get_new_child_defaults(config: dict[str, Any]) -> dict[str, Any]:
    """Fields used for subtasks created through the add-child hook."""
    return _task_defaults(config, "new_child", DEFAULT_NEW_CHILD_TEXT, DEFAULT_NEW_CHILD_DURATION)
