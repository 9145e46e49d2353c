from __future__ import annotations

import json
import shutil
from pathlib import Path
from time import sleep

from relpkg.core.result import Err, Ok, Result
from relpkg.core.structured import StrDict, as_obj_list, as_str_dict, get_int, get_str
from relpkg.platform.process import ProcessError
from relpkg.platform.process import run as run_process
from relpkg.release.errors import ReleaseError, ReleaseErrorKind
from relpkg.release.model import Asset, RemoteRelease
from relpkg.release.timeouts import (
    GH_READ_RETRY_ATTEMPTS,
    GH_READ_RETRY_DELAY_SECONDS,
    GH_TIMEOUT_SECONDS,
    GH_UPLOAD_TIMEOUT_SECONDS,
)

ASSETS_PER_PAGE = 100


def _gh_error_text(error: ProcessError) -> str:
    return f"{error.stderr}\n{error.stdout}".lower()


def _is_transient_gh_error(error: ProcessError) -> bool:
    text = _gh_error_text(error)
    markers = (
        "timed out",
        "timeout",
        "connection reset",
        "connection refused",
        "temporarily unavailable",
        "service unavailable",
        "bad gateway",
        "gateway timeout",
        "tls handshake timeout",
        "network is unreachable",
        "http 429",
        "http 500",
        "http 502",
        "http 503",
        "http 504",
    )
    if error.returncode == -1 and "timed out" in text:
        return True
    return any(marker in text for marker in markers)


def _is_not_found(error: ProcessError) -> bool:
    text = _gh_error_text(error)
    return "http 404" in text or "release not found" in text


def run_gh_read(
    *,
    cwd: Path,
    cmd: list[str],
    kind: ReleaseErrorKind,
    message: str,
    hint: str | None = None,
    timeout: float = GH_TIMEOUT_SECONDS,
    retry_attempts: int = GH_READ_RETRY_ATTEMPTS,
) -> Result[str, ReleaseError]:
    """Run a read-only gh command, retrying transient failures."""
    attempts = max(1, retry_attempts)
    for attempt in range(attempts):
        result = run_process(cmd, cwd=cwd, timeout=timeout)
        if isinstance(result, Ok):
            return result

        error = result.error
        if attempt < attempts - 1 and _is_transient_gh_error(error):
            sleep(GH_READ_RETRY_DELAY_SECONDS * (attempt + 1))
            continue

        return Err(
            ReleaseError(
                kind="release_not_found" if _is_not_found(error) else kind,
                message=message,
                hint=error.stderr.strip() or hint,
            )
        )

    return Err(ReleaseError(kind=kind, message=message, hint=hint))


def ensure_gh_available() -> Result[None, ReleaseError]:
    if shutil.which("gh") is None:
        return Err(
            ReleaseError(
                kind="gh_missing",
                message="gh: missing",
                hint="Install GitHub CLI: https://cli.github.com/",
            )
        )
    return Ok(None)


def ensure_gh_auth(*, cwd: Path) -> Result[None, ReleaseError]:
    result = run_process(["gh", "auth", "status"], cwd=cwd, timeout=GH_TIMEOUT_SECONDS)
    if isinstance(result, Err):
        return Err(
            ReleaseError(
                kind="gh_auth_required",
                message="gh auth required",
                hint="Run: gh auth login (or export GH_TOKEN)",
            )
        )
    return Ok(None)


def gh_api_json(*, cwd: Path, endpoint: str) -> Result[object, ReleaseError]:
    result = run_gh_read(
        cwd=cwd,
        cmd=["gh", "api", endpoint],
        kind="api_failed",
        message=f"gh api failed: {endpoint}",
        hint=endpoint,
    )
    if isinstance(result, Err):
        return result

    try:
        obj: object = json.loads(result.value)
    except json.JSONDecodeError as e:
        return Err(
            ReleaseError(
                kind="api_failed",
                message=f"gh api returned invalid JSON: {e}",
                hint=endpoint,
            )
        )

    return Ok(obj)


def _parse_asset(item: object) -> Asset | None:
    d = as_str_dict(item)
    if d is None:
        return None
    asset_id = get_int(d, "id")
    name = get_str(d, "name")
    if asset_id is None or name is None:
        return None
    return Asset(id=asset_id, name=name, size=get_int(d, "size") or 0)


def _parse_release(data: StrDict, *, endpoint: str) -> Result[RemoteRelease, ReleaseError]:
    release_id = get_int(data, "id")
    tag = get_str(data, "tag_name")
    if release_id is None or tag is None:
        return Err(
            ReleaseError(
                kind="api_failed",
                message="release payload is missing id or tag_name",
                hint=endpoint,
            )
        )

    assets: list[Asset] = []
    for item in as_obj_list(data.get("assets")) or []:
        asset = _parse_asset(item)
        if asset is not None:
            assets.append(asset)

    return Ok(RemoteRelease(id=release_id, tag=tag, assets=tuple(assets)))


def _get_release(*, cwd: Path, endpoint: str) -> Result[RemoteRelease, ReleaseError]:
    obj = gh_api_json(cwd=cwd, endpoint=endpoint)
    if isinstance(obj, Err):
        return obj

    data = as_str_dict(obj.value)
    if data is None:
        return Err(
            ReleaseError(kind="api_failed", message="unexpected release payload", hint=endpoint)
        )
    return _parse_release(data, endpoint=endpoint)


def get_latest_release(*, cwd: Path, repo: str) -> Result[RemoteRelease, ReleaseError]:
    """Latest published (non-draft, non-prerelease) release with its assets."""
    return _get_release(cwd=cwd, endpoint=f"repos/{repo}/releases/latest")


def get_release_by_tag(*, cwd: Path, repo: str, tag: str) -> Result[RemoteRelease, ReleaseError]:
    return _get_release(cwd=cwd, endpoint=f"repos/{repo}/releases/tags/{tag}")


def list_release_assets(
    *, cwd: Path, repo: str, release_id: int
) -> Result[list[Asset], ReleaseError]:
    """Every asset attached to a release, following pagination."""
    out: list[Asset] = []
    page = 1
    while True:
        endpoint = (
            f"repos/{repo}/releases/{release_id}/assets?per_page={ASSETS_PER_PAGE}&page={page}"
        )
        obj = gh_api_json(cwd=cwd, endpoint=endpoint)
        if isinstance(obj, Err):
            return obj

        raw = as_obj_list(obj.value)
        if raw is None:
            return Err(
                ReleaseError(kind="api_failed", message="unexpected assets payload", hint=endpoint)
            )

        for item in raw:
            asset = _parse_asset(item)
            if asset is not None:
                out.append(asset)

        if len(raw) < ASSETS_PER_PAGE:
            return Ok(out)
        page += 1


def delete_release_asset(*, cwd: Path, repo: str, asset: Asset) -> Result[None, ReleaseError]:
    """Delete one asset. An asset that is already gone counts as deleted."""
    result = run_process(
        ["gh", "api", "-X", "DELETE", f"repos/{repo}/releases/assets/{asset.id}"],
        cwd=cwd,
        timeout=GH_TIMEOUT_SECONDS,
    )
    if isinstance(result, Err):
        if _is_not_found(result.error):
            return Ok(None)
        return Err(
            ReleaseError(
                kind="sync_failed",
                message=f"failed to delete asset: {asset.name}",
                hint=result.error.stderr.strip() or None,
            )
        )
    return Ok(None)


def upload_release_asset(
    *,
    cwd: Path,
    repo: str,
    tag: str,
    path: Path,
    clobber: bool = False,
) -> Result[None, ReleaseError]:
    cmd = ["gh", "release", "upload", tag, str(path), "--repo", repo]
    if clobber:
        cmd.append("--clobber")

    result = run_process(cmd, cwd=cwd, timeout=GH_UPLOAD_TIMEOUT_SECONDS)
    if isinstance(result, Err):
        return Err(
            ReleaseError(
                kind="sync_failed",
                message=f"failed to upload asset: {path.name}",
                hint=result.error.stderr.strip() or None,
            )
        )
    return Ok(None)
