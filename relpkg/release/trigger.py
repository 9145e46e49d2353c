"""Derive the run context from the GitHub Actions environment."""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path

from relpkg.core.result import Err, Ok, Result
from relpkg.core.structured import as_str_dict, get_str, get_table
from relpkg.release.errors import ReleaseError
from relpkg.release.model import EventTriggered, ManualDispatch, RunContext


def context_from_env(env: Mapping[str, str] | None = None) -> Result[RunContext, ReleaseError]:
    """``release`` events carry their tag in the event payload; anything else is manual."""
    env = env if env is not None else os.environ
    if env.get("GITHUB_EVENT_NAME", "") != "release":
        return Ok(ManualDispatch())

    event_path = env.get("GITHUB_EVENT_PATH", "").strip()
    if not event_path:
        return Err(
            ReleaseError(
                kind="invalid_input",
                message="GITHUB_EVENT_PATH is not set for a release event",
                hint="Pass --tag explicitly.",
            )
        )

    try:
        payload: object = json.loads(Path(event_path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        return Err(
            ReleaseError(kind="invalid_input", message=f"failed to read event payload: {e}")
        )

    release = get_table(as_str_dict(payload) or {}, "release")
    tag = get_str(release, "tag_name") if release is not None else None
    if not tag:
        return Err(
            ReleaseError(kind="invalid_input", message="release event has no release.tag_name")
        )
    return Ok(EventTriggered(tag=tag))
