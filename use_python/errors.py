from __future__ import annotations

from typing import Sequence


class UsePythonError(RuntimeError):
    """Base class for every failure raised by use-python."""


class ConfigurationError(UsePythonError, ValueError):
    """Invocation or requirement declaration is invalid or insufficient."""


class IoError(UsePythonError):
    """Filesystem preparation (e.g. work dir creation) failed before launch."""


class LaunchError(UsePythonError):
    """The interpreter process could not be started at all."""

    def __init__(self, message: str, *, args: Sequence[str]) -> None:
        super().__init__(message)
        self.argv = list(args)


class ExecutionError(UsePythonError):
    """The process started but exited with a nonzero code."""

    def __init__(self, returncode: int, *, args: Sequence[str], output_tail: Sequence[str] = ()) -> None:
        self.returncode = returncode
        self.argv = list(args)
        self.output_tail = list(output_tail)
        msg = f"Python execution failed ({returncode}): {' '.join(self.argv)}"
        if self.output_tail:
            msg += "\n" + "\n".join(self.output_tail)
        super().__init__(msg)


class InvocationCancelled(UsePythonError):
    """The owning task was cancelled while the process was running."""

    def __init__(self, *, args: Sequence[str]) -> None:
        super().__init__(f"Python execution cancelled: {' '.join(args)}")
        self.argv = list(args)
