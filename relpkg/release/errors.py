from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

ReleaseErrorKind = Literal[
    "gh_missing",
    "gh_auth_required",
    "invalid_input",
    "invalid_tag",
    "release_not_found",
    "api_failed",
    "build_failed",
    "validation_failed",
    "sync_failed",
    "repo_failed",
    "state_failed",
    "cancelled",
]


@dataclass(frozen=True, slots=True)
class ReleaseError:
    kind: ReleaseErrorKind
    message: str
    hint: str | None = None

    def pretty(self) -> str:
        if self.hint:
            return f"{self.message} (hint: {self.hint})"
        return self.message
