"""Exceptions raised by the builder, the orchestrator and the install steps.

Hierarchy:
    ArchSuiteError (base)
        ├── EnvironmentCheckError   wrong host, missing privileges/tools/resources
        ├── NetworkError            connectivity still failing after retries
        ├── UserAborted             user declined a destructive prompt (clean exit)
        ├── ValidationError         rejected user input
        ├── CommandError            an external tool exited non-zero
        ├── BuildError              ISO build could not produce a valid artifact
        └── StepFailed              an install step executable exited non-zero
"""

from __future__ import annotations

from typing import Sequence


class ArchSuiteError(RuntimeError):
    """Base exception for everything archsuite raises on purpose."""


class EnvironmentCheckError(ArchSuiteError):
    pass


class NetworkError(ArchSuiteError):
    pass


class UserAborted(ArchSuiteError):
    """Raised when the user declines; callers exit 0."""

    def __init__(self, message: str = "Cancelled by user"):
        super().__init__(message)


class ValidationError(ArchSuiteError, ValueError):
    pass


class CommandError(ArchSuiteError):
    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        msg = f"Command failed ({returncode}): {' '.join(self.argv)}"
        if stderr.strip():
            msg += f"\n{stderr.strip()}"
        super().__init__(msg)


class BuildError(ArchSuiteError):
    pass


class StepFailed(ArchSuiteError):
    def __init__(self, step, returncode: int):
        self.step = step
        self.returncode = returncode
        super().__init__(f"Step '{step.name}' failed with exit code {returncode}")


class ConfigError(ArchSuiteError, ValueError):
    pass


# Exit status of a step executable whose user declined a prompt. The
# orchestrator stops the pipeline on it without reporting a failure.
# argparse uses 2 for usage errors, so this must differ from it.
EXIT_CANCELLED = 3
