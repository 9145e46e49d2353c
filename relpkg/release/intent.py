"""Intent log for release asset replacement.

Replacing assets is delete-then-upload and cannot be made atomic on GitHub.
Before touching the release, the synchronizer records what it is about to
delete and upload, then records each step as it completes. A run that dies
half-way leaves the file behind; the next run for the same release reads it
and resumes instead of starting over.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Literal

from relpkg.core.result import Err, Ok, Result
from relpkg.core.structured import as_obj_list, as_str_dict, get_int, get_str
from relpkg.platform.files import atomic_write_text
from relpkg.release.errors import ReleaseError
from relpkg.release.model import Asset, RemoteRelease

INTENT_SCHEMA = 1

IntentPhase = Literal["delete", "upload"]

_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True, slots=True)
class PlannedUpload:
    name: str
    size: int


@dataclass(frozen=True, slots=True)
class SyncIntent:
    repo: str
    tag: str
    release_id: int
    run_id: str
    phase: IntentPhase
    to_delete: tuple[Asset, ...]
    to_upload: tuple[PlannedUpload, ...]
    deleted: tuple[int, ...] = ()
    uploaded: tuple[str, ...] = ()

    def targets(self, *, repo: str, tag: str, release_id: int) -> bool:
        return self.repo == repo and self.tag == tag and self.release_id == release_id

    def with_phase(self, phase: IntentPhase) -> SyncIntent:
        return replace(self, phase=phase)

    def with_deleted(self, asset_id: int) -> SyncIntent:
        return replace(self, deleted=(*self.deleted, asset_id))

    def with_uploaded(self, name: str) -> SyncIntent:
        return replace(self, uploaded=(*self.uploaded, name))


def intent_path(*, state_dir: Path, tag: str) -> Path:
    safe = _UNSAFE_CHARS_RE.sub("_", tag) or "release"
    return state_dir / f"sync-{safe}.json"


def write_intent(*, path: Path, intent: SyncIntent) -> Result[None, ReleaseError]:
    payload: dict[str, object] = {
        "schema": INTENT_SCHEMA,
        "repo": intent.repo,
        "tag": intent.tag,
        "release_id": intent.release_id,
        "run_id": intent.run_id,
        "phase": intent.phase,
        "to_delete": [{"id": a.id, "name": a.name, "size": a.size} for a in intent.to_delete],
        "to_upload": [{"name": u.name, "size": u.size} for u in intent.to_upload],
        "deleted": list(intent.deleted),
        "uploaded": list(intent.uploaded),
    }

    try:
        atomic_write_text(path, json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    except OSError as e:
        return Err(
            ReleaseError(
                kind="state_failed",
                message=f"failed to write sync intent: {e}",
                hint=str(path),
            )
        )
    return Ok(None)


def read_intent(*, path: Path) -> Result[SyncIntent | None, ReleaseError]:
    """Load a pending intent; Ok(None) when there is none."""
    if not path.exists():
        return Ok(None)

    try:
        text = path.read_text(encoding="utf-8")
        obj: object = json.loads(text)
    except OSError as e:
        return Err(
            ReleaseError(
                kind="state_failed", message=f"failed to read sync intent: {e}", hint=str(path)
            )
        )
    except json.JSONDecodeError as e:
        return Err(
            ReleaseError(
                kind="state_failed", message=f"invalid sync intent JSON: {e}", hint=str(path)
            )
        )

    data = as_str_dict(obj)
    if data is None or get_int(data, "schema") != INTENT_SCHEMA:
        return Err(
            ReleaseError(kind="state_failed", message="unsupported sync intent", hint=str(path))
        )

    repo = get_str(data, "repo")
    tag = get_str(data, "tag")
    release_id = get_int(data, "release_id")
    phase = get_str(data, "phase")
    if repo is None or tag is None or release_id is None or phase not in ("delete", "upload"):
        return Err(
            ReleaseError(kind="state_failed", message="incomplete sync intent", hint=str(path))
        )

    to_delete: list[Asset] = []
    for item in as_obj_list(data.get("to_delete")) or []:
        d = as_str_dict(item)
        if d is None:
            continue
        asset_id = get_int(d, "id")
        name = get_str(d, "name")
        if asset_id is not None and name is not None:
            to_delete.append(Asset(id=asset_id, name=name, size=get_int(d, "size") or 0))

    to_upload: list[PlannedUpload] = []
    for item in as_obj_list(data.get("to_upload")) or []:
        d = as_str_dict(item)
        name = get_str(d, "name") if d is not None else None
        if d is not None and name is not None:
            to_upload.append(PlannedUpload(name=name, size=get_int(d, "size") or 0))

    deleted = [i for i in as_obj_list(data.get("deleted")) or [] if isinstance(i, int)]
    uploaded = [n for n in as_obj_list(data.get("uploaded")) or [] if isinstance(n, str)]

    return Ok(
        SyncIntent(
            repo=repo,
            tag=tag,
            release_id=release_id,
            run_id=get_str(data, "run_id") or "",
            phase="delete" if phase == "delete" else "upload",
            to_delete=tuple(to_delete),
            to_upload=tuple(to_upload),
            deleted=tuple(deleted),
            uploaded=tuple(uploaded),
        )
    )


def clear_intent(*, path: Path) -> None:
    path.unlink(missing_ok=True)


def pending_upload_names(
    *, state_dir: Path, repo: str, release: RemoteRelease
) -> Result[list[str], ReleaseError]:
    """Names an unfinished replace of ``release`` was about to upload.

    A replace that crashed after deleting may leave the release without the
    assets that record its latest build; the intent still names them.
    """
    pending = read_intent(path=intent_path(state_dir=state_dir, tag=release.tag))
    if isinstance(pending, Err):
        return pending
    intent = pending.value
    if intent is None or not intent.targets(repo=repo, tag=release.tag, release_id=release.id):
        return Ok([])
    return Ok([u.name for u in intent.to_upload])
