"""
Task plugins for use-python.

A plugin turns a [[task]] table into a runnable command; built-in kinds are
`python` and `pip`, extra kinds are loaded from plugin directories.
"""

from use_python.plugins.api import TaskHandler, TaskPlugin
from use_python.plugins.factory import TaskFactory
from use_python.plugins.loader import PluginLoadResult, load_plugins

__all__ = ["TaskHandler", "TaskPlugin", "TaskFactory", "PluginLoadResult", "load_plugins"]
