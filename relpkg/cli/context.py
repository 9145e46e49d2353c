from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import typer

from relpkg.core.errors import ErrorCode
from relpkg.core.result import Err
from relpkg.output.console import ConsoleProtocol, RichConsole
from relpkg.release.config import CONFIG_FILE_NAME, Config, load_config, load_config_or_default

ROOT_ENV = "RELPKG_ROOT"
CONFIG_ENV = "RELPKG_CONFIG"


@dataclass(frozen=True, slots=True)
class CLIContext:
    root: Path
    config: Config
    console: ConsoleProtocol

    @property
    def state_dir(self) -> Path:
        return self.root / self.config.project.state_dir


def build_context() -> CLIContext:
    root = Path(os.environ.get(ROOT_ENV) or Path.cwd())
    explicit = os.environ.get(CONFIG_ENV)

    # An explicit --config must exist; the default location is optional.
    if explicit:
        config_result = load_config(Path(explicit))
    else:
        config_result = load_config_or_default(root / CONFIG_FILE_NAME)

    if isinstance(config_result, Err):
        typer.echo(f"error: {config_result.error.message}", err=True)
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))

    return CLIContext(root=root, config=config_result.value, console=RichConsole())
