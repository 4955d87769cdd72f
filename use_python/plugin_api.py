"""
Stable SDK for external task plugins.

Plugin authors should only depend on this module and avoid importing internal
implementation details from the core codebase.
"""

from __future__ import annotations

from use_python.core import Command, Context, Options, Python
from use_python.errors import ConfigurationError, ExecutionError, LaunchError
from use_python.invocation import InvocationSpec, LogLevel
from use_python.plugins.api import TaskHandler, TaskPlugin
from use_python.plugins.builtin import PythonTask, invocation_from_dict
from use_python.util import ProcessResult, sh_join

__all__ = [
    "Command",
    "Context",
    "Options",
    "Python",
    "ConfigurationError",
    "ExecutionError",
    "LaunchError",
    "InvocationSpec",
    "LogLevel",
    "TaskHandler",
    "TaskPlugin",
    "PythonTask",
    "invocation_from_dict",
    "ProcessResult",
    "sh_join",
]
