"""Typed ``relpkg.toml`` loading.

The file describes the GitHub repository, the package name, the build matrix
(one entry per package format and architecture) with optional smoke tests, and
where the package repository tree lives.
"""

from __future__ import annotations

import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from relpkg.core.result import Err, Ok, Result
from relpkg.core.structured import (
    StrDict,
    as_str_dict,
    get_int,
    get_list,
    get_str,
    get_str_list,
    get_table,
)
from relpkg.release.timeouts import SMOKE_GRACE_SECONDS

__all__ = [
    "BuildJobConfig",
    "Config",
    "ConfigError",
    "IndexerConfig",
    "ProjectConfig",
    "RepositoryConfig",
    "SmokeConfig",
    "ValidationConfig",
    "CONFIG_FILE_NAME",
    "load_config",
    "load_config_or_default",
]

CONFIG_FILE_NAME = "relpkg.toml"

DEFAULT_REPO = "alumet-dev/alumet"
DEFAULT_PACKAGE = "alumet-agent"
DEFAULT_CONCURRENCY_GROUP = "release-workflow"
DEFAULT_STATE_DIR = ".relpkg"
DEFAULT_REPOSITORY_ROOT = "docs/rpm"
DEFAULT_GOSS_FILE = ".github/goss_validate.yaml"


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when config cannot be loaded or parsed."""

    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class ProjectConfig:
    repo: str = DEFAULT_REPO
    package: str = DEFAULT_PACKAGE
    concurrency_group: str = DEFAULT_CONCURRENCY_GROUP
    state_dir: str = DEFAULT_STATE_DIR
    max_parallel: int = 2


@dataclass(frozen=True, slots=True)
class IndexerConfig:
    """Command regenerating index metadata inside one leaf directory.

    ``{dir}`` is replaced with the leaf path. When ``stdout_file`` is set the
    command runs inside the leaf and its output is written to that file.
    """

    command: tuple[str, ...]
    stdout_file: str | None = None


def _default_indexers() -> dict[str, IndexerConfig]:
    return {
        "rpm": IndexerConfig(command=("createrepo_c", "{dir}")),
        "deb": IndexerConfig(
            command=("dpkg-scanpackages", "--multiversion", "."),
            stdout_file="Packages",
        ),
    }


@dataclass(frozen=True, slots=True)
class RepositoryConfig:
    root: str = DEFAULT_REPOSITORY_ROOT
    min_depth: int = 2
    indexers: dict[str, IndexerConfig] = field(default_factory=_default_indexers)


@dataclass(frozen=True, slots=True)
class SmokeConfig:
    """Start the installed agent, check it survives, then interrupt it."""

    command: tuple[str, ...]
    grace_seconds: float = SMOKE_GRACE_SECONDS


@dataclass(frozen=True, slots=True)
class ValidationConfig:
    install: tuple[str, ...] = ()
    goss_file: str | None = DEFAULT_GOSS_FILE
    smoke: SmokeConfig | None = None


@dataclass(frozen=True, slots=True)
class BuildJobConfig:
    name: str
    command: tuple[str, ...]
    arch: str
    output_dir: str
    pattern: str
    distro: str | None = None
    distro_version: str | None = None
    validate: ValidationConfig | None = None


@dataclass(frozen=True, slots=True)
class Config:
    """Main configuration container."""

    project: ProjectConfig = field(default_factory=ProjectConfig)
    repository: RepositoryConfig = field(default_factory=RepositoryConfig)
    builds: tuple[BuildJobConfig, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Result[Config, str]:
        project: StrDict = get_table(data, "project") or {}
        repository: StrDict = get_table(data, "repository") or {}

        max_parallel = get_int(project, "max_parallel")
        if max_parallel is not None and max_parallel < 1:
            return Err("project.max_parallel must be >= 1")

        indexers = _default_indexers()
        index_tbl: StrDict = get_table(repository, "index") or {}
        for ext, raw in index_tbl.items():
            tbl = as_str_dict(raw)
            command = get_str_list(tbl, "command") if tbl is not None else None
            if tbl is None or not command:
                return Err(f"repository.index.{ext}.command must be a non-empty list")
            indexers[ext] = IndexerConfig(
                command=tuple(command), stdout_file=get_str(tbl, "stdout_file")
            )

        builds: list[BuildJobConfig] = []
        for i, raw in enumerate(get_list(data, "build") or []):
            parsed = _parse_build(raw, index=i)
            if isinstance(parsed, Err):
                return parsed
            builds.append(parsed.value)

        names = [b.name for b in builds]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            return Err(f"duplicate build names: {', '.join(dupes)}")

        return Ok(
            cls(
                project=ProjectConfig(
                    repo=get_str(project, "repo") or DEFAULT_REPO,
                    package=get_str(project, "package") or DEFAULT_PACKAGE,
                    concurrency_group=get_str(project, "concurrency_group")
                    or DEFAULT_CONCURRENCY_GROUP,
                    state_dir=get_str(project, "state_dir") or DEFAULT_STATE_DIR,
                    max_parallel=max_parallel or 2,
                ),
                repository=RepositoryConfig(
                    root=get_str(repository, "root") or DEFAULT_REPOSITORY_ROOT,
                    min_depth=get_int(repository, "min_depth") or 2,
                    indexers=indexers,
                ),
                builds=tuple(builds),
            )
        )


def _parse_build(raw: object, *, index: int) -> Result[BuildJobConfig, str]:
    tbl = as_str_dict(raw)
    if tbl is None:
        return Err(f"build[{index}] must be a table")

    name = get_str(tbl, "name")
    command = get_str_list(tbl, "command")
    arch = get_str(tbl, "arch")
    if name is None or not command or arch is None:
        return Err(f"build[{index}] requires name, command and arch")

    validate: ValidationConfig | None = None
    validate_tbl = get_table(tbl, "validate")
    if validate_tbl is not None:
        smoke: SmokeConfig | None = None
        smoke_tbl = get_table(validate_tbl, "smoke")
        if smoke_tbl is not None:
            smoke_cmd = get_str_list(smoke_tbl, "command")
            if not smoke_cmd:
                return Err(f"build[{index}].validate.smoke.command must be a non-empty list")
            grace = smoke_tbl.get("grace_seconds", SMOKE_GRACE_SECONDS)
            if isinstance(grace, bool) or not isinstance(grace, (int, float)):
                return Err(f"build[{index}].validate.smoke.grace_seconds must be a number")
            smoke = SmokeConfig(command=tuple(smoke_cmd), grace_seconds=float(grace))

        goss_file: str | None = get_str(validate_tbl, "goss_file")
        if "goss_file" not in validate_tbl:
            goss_file = DEFAULT_GOSS_FILE
        validate = ValidationConfig(
            install=tuple(get_str_list(validate_tbl, "install") or ()),
            goss_file=goss_file,
            smoke=smoke,
        )

    return Ok(
        BuildJobConfig(
            name=name,
            command=tuple(command),
            arch=arch,
            output_dir=get_str(tbl, "output_dir") or "dist",
            pattern=get_str(tbl, "pattern") or "*.rpm",
            distro=get_str(tbl, "distro"),
            distro_version=get_str(tbl, "distro_version"),
            validate=validate,
        )
    )


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    try:
        content = path.read_bytes()
        data_obj: object = tomllib.loads(content.decode("utf-8"))
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))

    data = as_str_dict(data_obj)
    if data is None:
        return Err(ConfigError("Config root must be a TOML table", path=path))
    return Ok(data)


def load_config(path: Path) -> Result[Config, ConfigError]:
    """Load and validate ``relpkg.toml``.

    Args:
        path: Path to the config file.

    Returns:
        Ok(Config) on success, Err(ConfigError) on failure.
    """
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    parsed = Config.from_dict(result.value)
    if isinstance(parsed, Err):
        return Err(ConfigError(f"Invalid config: {parsed.error}", path=path))
    return Ok(parsed.value)


def load_config_or_default(path: Path) -> Result[Config, ConfigError]:
    """Like ``load_config`` but a missing file yields the defaults."""
    if not path.exists():
        return Ok(Config())
    return load_config(path)
