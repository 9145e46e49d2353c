"""Fan the resolved release out to package builds and their smoke tests.

Builds run concurrently (bounded by ``max_parallel``). Once every build has
finished, each successful build's validation runs in declaration order; the
validation of a failed build is skipped. Publishing is allowed only when every
build and every validation succeeded.

Cancellation is cooperative: before each job the dispatcher asks whether the
run still owns its concurrency group and stops if it does not.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from relpkg.core.result import Err
from relpkg.output.console import ConsoleProtocol, Style
from relpkg.platform.process import run_silent
from relpkg.release.config import BuildJobConfig
from relpkg.release.model import PackageFile, PipelineContext
from relpkg.release.naming import parse_asset_name
from relpkg.release.templates import expand_command
from relpkg.release.validation import validate_packages

JobStage = Literal["build", "validate"]
JobStatus = Literal["succeeded", "failed", "skipped", "cancelled"]
OwnershipCheck = Callable[[], bool]


@dataclass(frozen=True, slots=True)
class JobOutcome:
    job: str
    stage: JobStage
    status: JobStatus
    detail: str = ""
    packages: tuple[PackageFile, ...] = ()


@dataclass(frozen=True, slots=True)
class DispatchResult:
    outcomes: tuple[JobOutcome, ...]

    def _stage(self, stage: JobStage) -> list[JobOutcome]:
        return [o for o in self.outcomes if o.stage == stage]

    @property
    def cancelled(self) -> bool:
        return any(o.status == "cancelled" for o in self.outcomes)

    @property
    def builds_ok(self) -> bool:
        return all(o.status == "succeeded" for o in self._stage("build"))

    @property
    def validations_ok(self) -> bool:
        return all(o.status in ("succeeded", "skipped") for o in self._stage("validate"))

    @property
    def ready_to_publish(self) -> bool:
        return not self.cancelled and self.builds_ok and self.validations_ok

    @property
    def packages(self) -> tuple[PackageFile, ...]:
        out: list[PackageFile] = []
        for o in self._stage("build"):
            out.extend(o.packages)
        return tuple(out)


def _always_owner() -> bool:
    return True


def collect_packages(
    *, job: BuildJobConfig, ctx: PipelineContext, output_dir: Path, console: ConsoleProtocol
) -> list[PackageFile]:
    """Files in ``output_dir`` produced for this run's (version, release)."""
    resolved = ctx.resolved
    out: list[PackageFile] = []
    for path in sorted(output_dir.glob(job.pattern)):
        if not path.is_file():
            continue
        parsed = parse_asset_name(path.name)
        if parsed is None:
            console.warning(f"{job.name}: ignoring unrecognized file name: {path.name}")
            continue
        if parsed.version != resolved.version or parsed.release != resolved.release:
            console.print(f"{job.name}: ignoring stale package {path.name}", Style.DIM)
            continue
        out.append(
            PackageFile(
                path=path,
                package=parsed.package,
                version=parsed.version,
                release=parsed.release,
                arch=parsed.arch,
                ext=parsed.ext,
                distro=parsed.distro or job.distro,
                distro_version=parsed.distro_version or job.distro_version,
            )
        )
    return out


def run_build(
    *,
    job: BuildJobConfig,
    ctx: PipelineContext,
    console: ConsoleProtocol,
) -> JobOutcome:
    output_dir = ctx.workspace_root / job.output_dir
    values = {**ctx.substitutions(), "arch": job.arch, "output_dir": str(output_dir)}
    cmd = expand_command(job.command, values)
    if isinstance(cmd, Err):
        return JobOutcome(job.name, "build", "failed", cmd.error.message)

    console.print(f"[{job.name}] {' '.join(cmd.value)}", Style.DIM)
    if not ctx.dry_run:
        output_dir.mkdir(parents=True, exist_ok=True)
        result = run_silent(cmd.value, cwd=ctx.workspace_root)
        if isinstance(result, Err):
            return JobOutcome(job.name, "build", "failed", str(result.error))

    packages = collect_packages(job=job, ctx=ctx, output_dir=output_dir, console=console)
    if not packages and not ctx.dry_run:
        return JobOutcome(
            job.name,
            "build",
            "failed",
            f"no {job.pattern} for {ctx.resolved.version}-{ctx.resolved.release} in {output_dir}",
        )

    return JobOutcome(job.name, "build", "succeeded", f"{len(packages)} file(s)", tuple(packages))


def run_validation(
    *,
    job: BuildJobConfig,
    build: JobOutcome,
    ctx: PipelineContext,
    console: ConsoleProtocol,
) -> JobOutcome:
    if job.validate is None:
        return JobOutcome(job.name, "validate", "skipped", "no validation configured")
    if build.status != "succeeded":
        return JobOutcome(job.name, "validate", "skipped", f"build {build.status}")

    values = {**ctx.substitutions(), "arch": job.arch}
    result = validate_packages(
        job=job.name,
        config=job.validate,
        files=[p.path for p in build.packages],
        values=values,
        cwd=ctx.workspace_root,
        report_dir=ctx.workspace_root / job.output_dir,
        console=console,
        dry_run=ctx.dry_run,
    )
    if isinstance(result, Err):
        return JobOutcome(job.name, "validate", "failed", result.error.pretty())
    return JobOutcome(job.name, "validate", "succeeded")


def dispatch(
    *,
    ctx: PipelineContext,
    jobs: Sequence[BuildJobConfig],
    console: ConsoleProtocol,
    max_parallel: int = 1,
    still_owner: OwnershipCheck = _always_owner,
) -> DispatchResult:
    if not still_owner():
        return DispatchResult(
            tuple(JobOutcome(j.name, "build", "cancelled", "concurrency group lost") for j in jobs)
        )

    console.header(f"Build {ctx.package} {ctx.resolved.version}-{ctx.resolved.release}")
    workers = max(1, min(max_parallel, len(jobs)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [pool.submit(run_build, job=j, ctx=ctx, console=console) for j in jobs]
        builds = [f.result() for f in futures]

    for b in builds:
        if b.status == "succeeded":
            console.success(f"build {b.job}: {b.detail}")
        else:
            console.error(f"build {b.job}: {b.detail}")

    console.header("Validate")
    validations: list[JobOutcome] = []
    for job, build in zip(jobs, builds, strict=True):
        if not still_owner():
            validations.append(
                JobOutcome(job.name, "validate", "cancelled", "concurrency group lost")
            )
            continue
        outcome = run_validation(job=job, build=build, ctx=ctx, console=console)
        match outcome.status:
            case "succeeded":
                console.success(f"validate {job.name}")
            case "failed":
                console.error(f"validate {job.name}: {outcome.detail}")
            case _:
                console.print(f"validate {job.name}: {outcome.detail}", Style.DIM)
        validations.append(outcome)

    return DispatchResult(tuple(builds) + tuple(validations))
