"""Run-level concurrency group.

At most one run acts on a release at a time. The group is a small JSON lock
file naming the owning run. A new run takes the group over, which cancels the
in-flight run: that run notices at its next job boundary that it no longer owns
the group and stops before touching the release. Nothing it already did is
rolled back.

The lock lives under the configured ``state_dir``, so it only serializes runs
that see the same directory. Runs on separate CI machines (each GitHub Actions
job gets a fresh runner) never see each other's lock; there the workflow's
own ``concurrency:`` group does the serializing, or ``state_dir`` must point at
storage every run shares.
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from relpkg.core.result import Err, Ok, Result
from relpkg.core.structured import as_str_dict, get_str
from relpkg.output.console import ConsoleProtocol
from relpkg.platform.files import atomic_write_text
from relpkg.release.errors import ReleaseError

_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9._-]+")


def group_lock_path(*, state_dir: Path, group: str) -> Path:
    safe = _UNSAFE_CHARS_RE.sub("_", group) or "default"
    return state_dir / f"concurrency-{safe}.json"


def _read_owner(path: Path) -> str | None:
    try:
        obj: object = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return None
    data = as_str_dict(obj)
    if data is None:
        return None
    return get_str(data, "run_id")


@dataclass(frozen=True, slots=True)
class GroupLease:
    group: str
    run_id: str
    path: Path

    def still_owner(self) -> bool:
        return _read_owner(self.path) == self.run_id

    def release(self) -> None:
        """Drop the lock, unless a newer run already owns it."""
        if self.still_owner():
            self.path.unlink(missing_ok=True)


def acquire_group(
    *,
    state_dir: Path,
    group: str,
    run_id: str,
    console: ConsoleProtocol,
    cancel_in_progress: bool = True,
) -> Result[GroupLease, ReleaseError]:
    path = group_lock_path(state_dir=state_dir, group=group)
    owner = _read_owner(path) if path.exists() else None

    if owner is not None and owner != run_id:
        if not cancel_in_progress:
            return Err(
                ReleaseError(
                    kind="cancelled",
                    message=f"concurrency group '{group}' is held by run {owner}",
                    hint=f"Wait for it to finish or remove {path}",
                )
            )
        console.warning(f"cancelling in-flight run {owner} (group '{group}')")

    payload = {
        "group": group,
        "run_id": run_id,
        "pid": os.getpid(),
        "acquired_at": datetime.now(UTC).isoformat(timespec="seconds"),
    }
    try:
        atomic_write_text(path, json.dumps(payload, indent=2) + "\n")
    except OSError as e:
        return Err(
            ReleaseError(
                kind="state_failed",
                message=f"failed to take concurrency group '{group}': {e}",
                hint=str(path),
            )
        )

    return Ok(GroupLease(group=group, run_id=run_id, path=path))
