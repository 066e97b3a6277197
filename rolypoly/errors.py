"""Exceptions raised by roly-poly-vpn.

Every error here is fatal: it propagates up to the CLI, which logs it and
exits non-zero.
"""

from typing import Optional, Sequence


class RolyPolyError(Exception):
    """Base class for all roly-poly-vpn errors."""
    pass


class ParameterError(RolyPolyError):
    """A required parameter could not be read, prompted for or saved."""
    pass


class GenerationError(RolyPolyError):
    """TOTP pass code generation failed."""
    pass


class CommandError(RolyPolyError):
    """An nmcli invocation failed.

    Attributes:
        command: Command line with secrets already masked
        returncode: Exit status, or None if the command never ran
        stderr: Captured standard error
    """

    def __init__(
            self,
            message: str,
            command: Sequence[str] = (),
            returncode: Optional[int] = None,
            stderr: str = "",
    ):
        super().__init__(message)
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr

    def __str__(self) -> str:
        text = super().__str__()
        if self.command:
            text += f" (command: {' '.join(self.command)}"
            if self.returncode is not None:
                text += f", exit code {self.returncode}"
            text += ")"
        if self.stderr:
            text += f": {self.stderr.strip()}"
        return text
