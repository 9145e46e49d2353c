from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path

from relpkg.core.result import Err, Ok, Result
from relpkg.release.errors import ReleaseError

FILES_PLACEHOLDER = "{files}"


def expand_command(
    template: Sequence[str],
    values: Mapping[str, str],
    *,
    files: Sequence[Path] = (),
) -> Result[list[str], ReleaseError]:
    """Fill ``{name}`` placeholders in a configured command.

    An argument that is exactly ``{files}`` expands to one argument per file.
    """
    out: list[str] = []
    for arg in template:
        if arg == FILES_PLACEHOLDER:
            out.extend(str(f) for f in files)
            continue
        try:
            out.append(arg.format_map(values))
        except (KeyError, IndexError, ValueError) as e:
            return Err(
                ReleaseError(
                    kind="invalid_input",
                    message=f"bad placeholder in command argument {arg!r}: {e}",
                    hint=f"Known placeholders: {', '.join(sorted(values))}, files",
                )
            )
    return Ok(out)
