from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

TriggerMode = Literal["event", "manual"]
SyncMode = Literal["append", "replace"]


@dataclass(frozen=True, slots=True)
class Asset:
    """A file attached to a GitHub release."""

    id: int
    name: str
    size: int = 0


@dataclass(frozen=True, slots=True)
class RemoteRelease:
    id: int
    tag: str
    assets: tuple[Asset, ...] = ()

    @property
    def asset_names(self) -> tuple[str, ...]:
        return tuple(a.name for a in self.assets)


@dataclass(frozen=True, slots=True)
class EventTriggered:
    """Run started by a release event; the tag is known up front."""

    tag: str


@dataclass(frozen=True, slots=True)
class ManualDispatch:
    """Run started by hand; the tuple is derived from the latest release."""


RunContext = EventTriggered | ManualDispatch


@dataclass(frozen=True, slots=True)
class ResolvedRelease:
    version: str
    release: int
    tag: str
    mode: TriggerMode

    @property
    def sync_mode(self) -> SyncMode:
        # A first publish appends; a re-run replaces whatever is attached.
        return "append" if self.mode == "event" else "replace"

    def as_outputs(self) -> dict[str, str]:
        return {"version": self.version, "release": str(self.release), "tag": self.tag}


@dataclass(frozen=True, slots=True)
class PipelineContext:
    """Per-run state handed to every downstream component."""

    resolved: ResolvedRelease
    repo: str
    package: str
    concurrency_group: str
    run_id: str
    workspace_root: Path
    dry_run: bool = False

    def substitutions(self) -> dict[str, str]:
        return {
            "version": self.resolved.version,
            "release": str(self.resolved.release),
            "tag": self.resolved.tag,
            "package": self.package,
        }


@dataclass(frozen=True, slots=True)
class PackageFile:
    """A built package annotated with its repository coordinates."""

    path: Path
    package: str
    version: str
    release: int
    arch: str
    ext: str
    distro: str | None = None
    distro_version: str | None = None

    @property
    def name(self) -> str:
        return self.path.name
