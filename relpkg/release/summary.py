"""Run summary: a console table plus the Markdown job summary."""

from __future__ import annotations

from relpkg.output.console import ConsoleProtocol
from relpkg.platform.github_env import append_step_summary
from relpkg.release.pipeline import PipelineResult

_COLUMNS = ("stage", "job", "status", "detail")


def summary_rows(result: PipelineResult) -> list[tuple[str, str, str, str]]:
    rows: list[tuple[str, str, str, str]] = []
    if result.dispatch is not None:
        for o in result.dispatch.outcomes:
            rows.append((o.stage, o.job, o.status, o.detail.splitlines()[0] if o.detail else ""))

    if result.sync is not None:
        s = result.sync
        status = "succeeded" if s.ok else "failed"
        detail = f"{len(s.uploaded)} uploaded, {len(s.deleted)} deleted, {len(s.kept)} kept"
        if s.delete_failures:
            detail += f", {len(s.delete_failures)} delete failure(s)"
        if s.upload_failures:
            detail += f", {len(s.upload_failures)} upload failure(s)"
        rows.append(("attach", s.mode, status, detail))

    if result.publish is not None:
        p = result.publish
        status = "succeeded" if p.ok else "failed"
        detail = f"{len(p.placed)} placed, {len(p.indexed)} indexed"
        if p.skipped:
            detail += f", {len(p.skipped)} skipped"
        rows.append(("publish", "repository", status, detail))

    return rows


def render_markdown(result: PipelineResult) -> str:
    lines: list[str] = []
    ctx = result.context
    if ctx is not None:
        r = ctx.resolved
        lines.append(f"## {ctx.package} {r.version}-{r.release} ({r.tag})")
    else:
        lines.append("## Release run")
    lines.append("")

    rows = summary_rows(result)
    if rows:
        lines.append("| " + " | ".join(_COLUMNS) + " |")
        lines.append("|" + "---|" * len(_COLUMNS))
        for row in rows:
            lines.append("| " + " | ".join(cell.replace("|", "\\|") for cell in row) + " |")
        lines.append("")

    for err in result.errors:
        lines.append(f"- **{err.kind}**: {err.pretty()}")
    if result.ok:
        lines.append("Release published.")
    return "\n".join(lines) + "\n"


def report_run(result: PipelineResult, *, console: ConsoleProtocol) -> None:
    rows = summary_rows(result)
    if rows:
        console.newline()
        console.table("Release run", _COLUMNS, rows)
    append_step_summary(render_markdown(result))
