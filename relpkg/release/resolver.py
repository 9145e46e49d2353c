"""Compute the (version, release) pair a run builds.

A release event carries its tag, so the version comes straight from it and the
release number starts at 1. A manual re-run rebuilds the latest published
release: the version and previous release number are recovered from the asset
names already attached, and the release number is bumped. Asset names an
unfinished replace was about to upload count too, so a rebuild that crashed
after deleting the old assets never hands out its release number again.

When several assets encode different (version, release) pairs, the highest pair
wins (versions compared numerically per dotted component). API listing order is
never relied upon.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

from relpkg.core.result import Err, Ok, Result
from relpkg.release.errors import ReleaseError
from relpkg.release.model import (
    EventTriggered,
    ManualDispatch,
    RemoteRelease,
    ResolvedRelease,
    RunContext,
)
from relpkg.release.naming import extract_version_release, strip_tag_marker, version_key

LatestReleaseFetcher = Callable[[], Result[RemoteRelease, ReleaseError]]
PendingUploads = Callable[[RemoteRelease], Result[list[str], ReleaseError]]


def resolve_event(tag: str) -> Result[ResolvedRelease, ReleaseError]:
    version = strip_tag_marker(tag)
    if not version:
        return Err(
            ReleaseError(
                kind="invalid_tag",
                message=f"release tag has no version: {tag!r}",
                hint="Expected a tag like v1.2.3",
            )
        )
    return Ok(ResolvedRelease(version=version, release=1, tag=tag.strip(), mode="event"))


def pick_latest_build(asset_names: Iterable[str]) -> tuple[str, int] | None:
    """Highest (version, release) pair encoded in the given asset names."""
    candidates = [c for c in (extract_version_release(n) for n in asset_names) if c is not None]
    if not candidates:
        return None
    return max(candidates, key=lambda c: (version_key(c[0]), c[1]))


def resolve_from_assets(tag: str, asset_names: Iterable[str]) -> ResolvedRelease:
    """Next build of an existing release, given its tag and attached asset names."""
    latest = pick_latest_build(asset_names)
    if latest is None:
        # Nothing parsable attached: start a fresh lineage from the tag.
        return ResolvedRelease(version=strip_tag_marker(tag), release=1, tag=tag, mode="manual")

    version, release = latest
    return ResolvedRelease(version=version, release=release + 1, tag=tag, mode="manual")


def resolve(
    context: RunContext,
    *,
    fetch_latest: LatestReleaseFetcher,
    pending_uploads: PendingUploads | None = None,
) -> Result[ResolvedRelease, ReleaseError]:
    """Resolve the tuple for a run.

    Args:
        context: How the run was triggered.
        fetch_latest: Returns the latest published release; only called for
            manual dispatch.
        pending_uploads: Asset names recorded for the latest release but not
            necessarily attached yet; only called for manual dispatch.

    Returns:
        Ok(ResolvedRelease), or Err only when the latest release cannot be
        fetched, the pending uploads cannot be read, or an event tag is
        empty.
    """
    match context:
        case EventTriggered(tag=tag):
            return resolve_event(tag)
        case ManualDispatch():
            latest = fetch_latest()
            if isinstance(latest, Err):
                return latest
            release = latest.value
            names = list(release.asset_names)
            if pending_uploads is not None:
                pending = pending_uploads(release)
                if isinstance(pending, Err):
                    return pending
                names.extend(pending.value)
            return Ok(resolve_from_assets(release.tag, names))
        case _:
            raise AssertionError(f"unexpected run context: {context!r}")
