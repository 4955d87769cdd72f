from __future__ import annotations

import logging
import os
import shutil
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Protocol

from use_python.invocation import InvocationSpec, build_args, prepare_work_dir, resolve_work_dir
from use_python.util import ProcessResult, ProcessRunner, environment_snapshot, expand_path, overlay_environment, sh_join


class Command(Protocol):
    """One configured task; `requires_packages` tasks run only after reconciliation."""

    name: str
    requires_packages: bool

    def apply(self, ctx: "Context") -> str: ...


@dataclass(frozen=True)
class Options:
    dry_run: bool


def default_binary() -> str:
    """`python` when it is on PATH (always on Windows), else `python3`."""
    if os.name == "nt" or shutil.which("python"):
        return "python"
    return "python3"


def resolve_binary(binary: str | None, path: str | None = None) -> str:
    """Interpreter to run: `binary` inside `path` when a directory is given, else as-is (PATH lookup)."""
    binary = binary or default_binary()
    if path:
        return str(expand_path(path) / binary)
    if os.sep in binary or (os.altsep and os.altsep in binary):
        return str(expand_path(binary))
    return binary


@dataclass(frozen=True)
class Python:
    """
    Runs commands against one resolved interpreter.

    The base environment is a read-only snapshot taken once; every invocation computes
    its own overlay on top of it, so concurrent invocations share no mutable state.
    """

    binary: str
    runner: ProcessRunner
    logger: logging.Logger
    project_dir: Path
    base_env: Mapping[str, str]

    def invoke(
        self,
        spec: InvocationSpec,
        *,
        capture: bool = False,
        cancel: threading.Event | None = None,
    ) -> ProcessResult:
        args = build_args(spec)
        if self.runner.dry_run:
            cwd = resolve_work_dir(spec, self.project_dir)
        else:
            cwd = prepare_work_dir(spec, self.project_dir)
        if cwd is None:
            cwd = self.project_dir
        argv = [self.binary, *args]
        return self.runner.run(
            argv,
            level=spec.log_level.value,
            prefix=spec.output_prefix,
            cwd=cwd,
            env=overlay_environment(self.base_env, spec.environment),
            capture=capture,
            cancel=cancel,
            display=sh_join([Path(self.binary).name, *args]),
        )


@dataclass(frozen=True)
class Context:
    project_dir: Path
    logger: logging.Logger
    runner: ProcessRunner
    python: Python
    options: Options
    cancel: threading.Event | None = None


def build_context(
    *,
    project_dir: Path,
    options: Options,
    logger: logging.Logger,
    binary: str | None = None,
    python_path: str | None = None,
    environment: Mapping[str, object] | None = None,
    cancel: threading.Event | None = None,
) -> Context:
    runner = ProcessRunner(dry_run=options.dry_run, logger=logger)
    base_env = environment_snapshot(overlay_environment(os.environ, environment))
    python = Python(
        binary=resolve_binary(binary, python_path),
        runner=runner,
        logger=logger,
        project_dir=project_dir,
        base_env=base_env,
    )
    logger.debug("Using python binary: %s", python.binary)

    return Context(
        project_dir=project_dir,
        logger=logger,
        runner=runner,
        python=python,
        options=options,
        cancel=cancel,
    )
