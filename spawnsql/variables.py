"""
Variables files - JSON, TOML or YAML, selected by file extension.

Whatever the format, the result is plain Python data (dicts, lists,
scalars) exposed to templates as ``variables``.
"""

from __future__ import annotations

import json
import logging
import tomllib
from pathlib import Path
from typing import Any, Callable, Dict

import yaml

from .faults import VariablesFault

logger = logging.getLogger("spawnsql.variables")


def _load_json(text: str) -> Any:
    return json.loads(text)


def _load_toml(text: str) -> Any:
    return tomllib.loads(text)


def _load_yaml(text: str) -> Any:
    return yaml.safe_load(text)


LOADERS: Dict[str, Callable[[str], Any]] = {
    ".json": _load_json,
    ".toml": _load_toml,
    ".yaml": _load_yaml,
    ".yml": _load_yaml,
}


def load_variables(path: str | Path) -> Any:
    """
    Load a variables file.

    Raises:
        VariablesFault: Unknown extension, unreadable file or parse error.
    """
    path = Path(path)
    loader = LOADERS.get(path.suffix.lower())
    if loader is None:
        supported = ", ".join(sorted(LOADERS))
        raise VariablesFault(str(path), f"unsupported extension '{path.suffix}' (expected {supported})")

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise VariablesFault(str(path), str(exc)) from exc

    try:
        data = loader(text)
    except (ValueError, yaml.YAMLError) as exc:
        raise VariablesFault(str(path), str(exc)) from exc

    logger.debug("Loaded variables from %s", path)
    return {} if data is None else data
