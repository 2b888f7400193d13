"""Task file loading.

A tasks file is a JSON array of instruction strings. It is read once, before
the worker pool starts, so every problem here is a configuration error.
"""

from __future__ import annotations

import json
from pathlib import Path

from aoa.core.result import ConfigurationError


def load_tasks(path: Path) -> list[str]:
    """Read the ordered task instructions from a JSON file.

    Raises:
        ConfigurationError: If the file is missing, unreadable, not JSON, or
            not a list of non-empty strings.
    """
    path = path.expanduser()
    if not path.is_file():
        raise ConfigurationError("Tasks file not found", context={"path": str(path)})

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigurationError(
            "Could not read tasks file", context={"path": str(path), "error": str(exc)}
        ) from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(
            "Tasks file is not valid JSON", context={"path": str(path), "error": str(exc)}
        ) from exc

    if not isinstance(data, list):
        raise ConfigurationError(
            "Tasks file must contain a JSON array of strings", context={"path": str(path)}
        )

    tasks: list[str] = []
    for position, item in enumerate(data):
        if not isinstance(item, str) or not item.strip():
            raise ConfigurationError(
                "Every task must be a non-empty string",
                context={"path": str(path), "index": position},
            )
        tasks.append(item)

    return tasks


__all__ = ["load_tasks"]
