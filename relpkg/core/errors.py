"""Process exit codes.

Every ``relpkg`` command ends with one of these codes so that CI callers can
tell a bad invocation from a failed build, a failed smoke test or a partially
synchronized release.
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Exit codes for CLI commands.

    Values are part of the CLI contract and must stay stable:
    - 0: Success
    - 1: User error (bad tag, bad arguments, bad config)
    - 2: Environment error (gh missing, not authenticated)
    - 3: Build error (a package build job failed)
    - 4: Network error (GitHub API unreachable or rejected the call)
    - 5: I/O error (repository tree or state file not writable)
    - 6: Validation error (smoke tests failed)
    - 7: Sync error (one or more asset uploads failed)
    - 8: Cancelled (a newer run took over the concurrency group)
    """

    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    BUILD_ERROR = 3
    NETWORK_ERROR = 4
    IO_ERROR = 5
    VALIDATION_ERROR = 6
    SYNC_ERROR = 7
    CANCELLED = 8

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK

    @property
    def is_error(self) -> bool:
        return self != ErrorCode.OK
