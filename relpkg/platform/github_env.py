"""GitHub Actions environment files.

When running inside Actions, step outputs go to ``$GITHUB_OUTPUT`` and the
Markdown job summary to ``$GITHUB_STEP_SUMMARY``. Outside Actions both helpers
are no-ops.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

__all__ = ["append_step_summary", "write_outputs"]


def _env_path(name: str, env: Mapping[str, str] | None) -> Path | None:
    value = (env if env is not None else os.environ).get(name, "").strip()
    return Path(value) if value else None


def write_outputs(values: Mapping[str, str], *, env: Mapping[str, str] | None = None) -> bool:
    """Append ``key=value`` lines to ``$GITHUB_OUTPUT``; False when unset."""
    path = _env_path("GITHUB_OUTPUT", env)
    if path is None:
        return False
    with path.open("a", encoding="utf-8") as handle:
        for key, value in values.items():
            handle.write(f"{key}={value}\n")
    return True


def append_step_summary(markdown: str, *, env: Mapping[str, str] | None = None) -> bool:
    path = _env_path("GITHUB_STEP_SUMMARY", env)
    if path is None:
        return False
    with path.open("a", encoding="utf-8") as handle:
        handle.write(markdown.rstrip("\n") + "\n")
    return True
