from __future__ import annotations

from typing import Sequence


class InstallerError(RuntimeError):
    """Base for every failure that should abort the current step."""


class MissingPrerequisiteError(InstallerError):
    def __init__(self, missing: Sequence[str]):
        self.missing = list(missing)
        super().__init__(f"required executables not found: {', '.join(self.missing)}")


class VerificationError(InstallerError):
    """Downloaded artifact does not match its published digest."""


class StateFileError(InstallerError):
    """Persisted state is missing or unreadable."""


class StateConsistencyError(InstallerError):
    """A step needs a state field that an earlier step should have written."""


class ConcurrentRunError(InstallerError):
    pass


class CommandError(InstallerError):
    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        msg = f"Command failed ({returncode}): {' '.join(self.argv)}"
        if stderr:
            msg += f"\n{stderr.strip()}"
        super().__init__(msg)


class SerializationError(InstallerError):
    pass


class TemplateError(InstallerError):
    pass


class InstallError(InstallerError):
    pass


class StepFailedError(InstallerError):
    def __init__(self, step: str, returncode: int):
        self.step = step
        self.returncode = returncode
        super().__init__(f"step {step} failed with exit code {returncode}")
