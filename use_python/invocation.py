from __future__ import annotations

import enum
import logging
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Sequence, Union

from use_python.errors import ConfigurationError, IoError
from use_python.util import env_value

LIFECYCLE = 25
QUIET = 35
logging.addLevelName(LIFECYCLE, "LIFECYCLE")
logging.addLevelName(QUIET, "QUIET")


class LogLevel(enum.Enum):
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    LIFECYCLE = LIFECYCLE
    WARN = logging.WARNING
    QUIET = QUIET

    @classmethod
    def parse(cls, value: Any) -> "LogLevel":
        if isinstance(value, LogLevel):
            return value
        if isinstance(value, str) and value:
            key = value.strip().upper()
            if key == "WARNING":
                key = "WARN"
            try:
                return cls[key]
            except KeyError:
                pass
        known = ", ".join(m.name.lower() for m in cls)
        raise ConfigurationError(f"Unknown log level {value!r} (known: {known})")


@dataclass(frozen=True)
class SingleToken:
    value: str


@dataclass(frozen=True)
class TokenSequence:
    tokens: tuple[str, ...]


CommandValue = Union[SingleToken, TokenSequence]


def command_value(raw: Any) -> CommandValue | None:
    """
    Resolve a raw command (string or list of strings) into a CommandValue.

    Empty strings and empty lists resolve to None (nothing to execute).
    """
    if raw is None or isinstance(raw, (SingleToken, TokenSequence)):
        return raw
    if isinstance(raw, str):
        return SingleToken(raw) if raw.strip() else None
    if isinstance(raw, (list, tuple)):
        tokens = tuple(str(x) for x in raw)
        return TokenSequence(tokens) if tokens else None
    raise ConfigurationError(f"'command' must be a string or a list of strings, got {type(raw).__name__}")


@dataclass(frozen=True)
class InvocationSpec:
    module: str | None = None
    command: CommandValue | None = None
    work_dir: Path | None = None
    create_work_dir: bool = True
    python_args: tuple[str, ...] = ()
    extra_args: tuple[str, ...] = ()
    environment: Mapping[str, str] = field(default_factory=dict)
    output_prefix: str = "\t"
    log_level: LogLevel = LogLevel.LIFECYCLE

    @classmethod
    def create(
        cls,
        *,
        module: str | None = None,
        command: Any = None,
        work_dir: str | Path | None = None,
        create_work_dir: bool = True,
        python_args: Sequence[str] = (),
        extra_args: Sequence[str] = (),
        environment: Mapping[str, Any] | None = None,
        output_prefix: str = "\t",
        log_level: Any = LogLevel.LIFECYCLE,
    ) -> "InvocationSpec":
        spec = cls(
            module=module or None,
            command=command_value(command),
            work_dir=Path(work_dir) if work_dir else None,
            create_work_dir=bool(create_work_dir),
            python_args=tuple(str(a) for a in python_args),
            extra_args=tuple(str(a) for a in extra_args),
            environment={str(k): env_value(v) for k, v in (environment or {}).items()},
            output_prefix=output_prefix,
            log_level=LogLevel.parse(log_level),
        )
        spec.validate()
        return spec

    def validate(self) -> None:
        if not self.module and self.command is None:
            raise ConfigurationError("Module or command to execute must be defined")


def _command_tokens(command: CommandValue | None, *, module_mode: bool) -> list[str]:
    if command is None:
        return []
    if isinstance(command, TokenSequence):
        return list(command.tokens)
    # Module sub-arguments are a command line; a bare command is one argument (script or code).
    if module_mode:
        return shlex.split(command.value)
    return [command.value]


def build_args(spec: InvocationSpec) -> list[str]:
    """Argument vector (without the interpreter binary) for one invocation."""
    spec.validate()
    args = list(spec.python_args)
    if spec.module:
        args += ["-m", spec.module]
    args += _command_tokens(spec.command, module_mode=bool(spec.module))
    args += list(spec.extra_args)
    return args


def resolve_work_dir(spec: InvocationSpec, base_dir: Path | None = None) -> Path | None:
    if spec.work_dir is None:
        return None
    wd = spec.work_dir.expanduser()
    if not wd.is_absolute() and base_dir is not None:
        wd = base_dir / wd
    return wd


def prepare_work_dir(spec: InvocationSpec, base_dir: Path | None = None) -> Path | None:
    wd = resolve_work_dir(spec, base_dir)
    if wd is None or not spec.create_work_dir:
        return wd
    try:
        wd.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise IoError(f"Failed to create work dir {wd}: {e}") from e
    return wd
