from __future__ import annotations

import json
from pathlib import Path
from string import Template
from typing import Any


PROMPTS_PATH = Path(__file__).resolve().parents[1] / "prompts" / "prompts.json"
# (path, mtime_ns, catalog) of the last catalog read
_catalog_cache: tuple[Path, int, dict[str, Any]] | None = None


def _load_catalog() -> dict[str, Any]:
    global _catalog_cache
    path = PROMPTS_PATH
    mtime_ns = path.stat().st_mtime_ns
    if _catalog_cache is not None and _catalog_cache[:2] == (path, mtime_ns):
        return _catalog_cache[2]

    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"Prompt catalog must be a JSON object: {path}")
    _catalog_cache = (path, mtime_ns, payload)
    return payload


def _resolve_prompt_entry(key: str) -> str:
    """Look up a dotted key; long prompts are stored as a list of lines."""
    node: Any = _load_catalog()
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            raise KeyError(f"Prompt key not found: {key}")
        node = node[part]
    if isinstance(node, list) and all(isinstance(line, str) for line in node):
        return "\n".join(node)
    if not isinstance(node, str):
        raise TypeError(f"Prompt key must map to a string or list of lines: {key}")
    return node


def render_prompt(key: str, **values: Any) -> str:
    template = Template(_resolve_prompt_entry(key))
    try:
        return template.substitute(**values)
    except KeyError as exc:
        missing = str(exc.args[0])
        raise KeyError(f"Missing template value '{missing}' for prompt '{key}'") from exc
