"""Process and filesystem seams."""

from .files import atomic_write_text, empty_directory
from .github_env import append_step_summary, write_outputs
from .process import ProcessError, run, run_and_interrupt, run_silent

__all__ = [
    "ProcessError",
    "append_step_summary",
    "atomic_write_text",
    "empty_directory",
    "run",
    "run_and_interrupt",
    "run_silent",
    "write_outputs",
]
