from __future__ import annotations

import collections
import logging
import os
import shlex
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import IO, Iterable, Mapping, Sequence

from use_python.errors import ExecutionError, InvocationCancelled, IoError, LaunchError

TAIL_LINES = 20
TERMINATE_GRACE_SECONDS = 5.0


def xdg_config_home() -> Path:
    return Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))


def expand_path(s: str) -> Path:
    # Expand ~ and $VARS
    return Path(os.path.expandvars(os.path.expanduser(s)))


def sh_join(args: Sequence[str]) -> str:
    return shlex.join(list(args))


def environment_snapshot(env: Mapping[str, str] | None = None) -> Mapping[str, str]:
    """Read-only copy of the environment every invocation starts from."""
    return MappingProxyType(dict(os.environ if env is None else env))


def env_value(value: object) -> str:
    # TOML/YAML booleans would otherwise become "True"/"False".
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def overlay_environment(base: Mapping[str, str], overlay: Mapping[str, object] | None) -> dict[str, str]:
    merged = dict(base)
    if overlay:
        merged.update({str(k): env_value(v) for k, v in overlay.items()})
    return merged


@dataclass(frozen=True)
class ProcessResult:
    args: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    captured: bool = False

    @property
    def aggregated_output_available(self) -> bool:
        return self.captured


class _StreamPump(threading.Thread):
    """Reads one pipe line by line, logging each line as it arrives."""

    def __init__(
        self,
        stream: IO[str],
        *,
        logger: logging.Logger,
        level: int,
        prefix: str,
        tail: collections.deque,
        capture: bool,
    ) -> None:
        super().__init__(daemon=True)
        self._stream = stream
        self._logger = logger
        self._level = level
        self._prefix = prefix
        self._tail = tail
        self._capture = capture
        self.lines: list[str] = []

    def run(self) -> None:
        with self._stream:
            for raw in self._stream:
                line = raw.rstrip("\r\n")
                self._tail.append(line)
                if self._capture:
                    self.lines.append(line)
                self._logger.log(self._level, "%s%s", self._prefix, line)


class ProcessRunner:
    def __init__(self, *, dry_run: bool, logger: logging.Logger) -> None:
        self._dry_run = dry_run
        self._logger = logger

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    def run(
        self,
        args: Iterable[str],
        *,
        level: int = logging.INFO,
        prefix: str = "\t",
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        capture: bool = False,
        check: bool = True,
        cancel: threading.Event | None = None,
        display: str | None = None,
    ) -> ProcessResult:
        """
        Run a process to completion, streaming both pipes through the logger.

        `env` is the complete environment for the child (see overlay_environment).
        With `capture`, the output is also returned for parsing; lines are still logged
        at `level`, so probes pass DEBUG to keep them out of normal output.
        """
        argv = [str(a) for a in args]
        self._logger.log(level, "[python] %s", display or sh_join(argv))
        if self._dry_run:
            return ProcessResult(args=argv, returncode=0, captured=capture)
        if cwd is not None and not Path(cwd).is_dir():
            raise IoError(f"Working directory does not exist: {cwd}")

        try:
            proc = subprocess.Popen(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
                errors="replace",
                cwd=str(cwd) if cwd is not None else None,
                env=dict(env) if env is not None else None,
            )
        except FileNotFoundError as e:
            raise LaunchError(f"Python binary not found: {argv[0]}", args=argv) from e
        except PermissionError as e:
            raise LaunchError(f"Python binary is not executable: {argv[0]}", args=argv) from e
        except OSError as e:
            raise LaunchError(f"Failed to start {argv[0]}: {e}", args=argv) from e

        tail: collections.deque = collections.deque(maxlen=TAIL_LINES)
        pumps = [
            _StreamPump(stream, logger=self._logger, level=level, prefix=prefix, tail=tail, capture=capture)
            for stream in (proc.stdout, proc.stderr)
        ]
        for p in pumps:
            p.start()

        try:
            returncode = self._wait(proc, cancel)
        except BaseException:
            self._terminate(proc)
            raise
        finally:
            for p in pumps:
                p.join()

        if returncode is None:
            raise InvocationCancelled(args=argv)

        self._logger.debug("Process finished with exit %s: %s", returncode, sh_join(argv))
        if check and returncode != 0:
            raise ExecutionError(returncode, args=argv, output_tail=list(tail))
        return ProcessResult(
            args=argv,
            returncode=returncode,
            stdout="\n".join(pumps[0].lines),
            stderr="\n".join(pumps[1].lines),
            captured=capture,
        )

    def _wait(self, proc: subprocess.Popen, cancel: threading.Event | None) -> int | None:
        if cancel is None:
            return proc.wait()
        while True:
            try:
                return proc.wait(timeout=0.1)
            except subprocess.TimeoutExpired:
                if cancel.is_set():
                    self._terminate(proc)
                    return None

    def _terminate(self, proc: subprocess.Popen) -> None:
        if proc.poll() is not None:
            return
        self._logger.warning("Terminating python process %s", proc.pid)
        proc.terminate()
        try:
            proc.wait(timeout=TERMINATE_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()
