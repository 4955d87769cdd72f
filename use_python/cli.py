from __future__ import annotations

import argparse
import logging
from pathlib import Path

from use_python.config_loader import LoadedConfig, load_config_file
from use_python.core import Command, Context, Options, build_context
from use_python.errors import ConfigurationError, ExecutionError, InvocationCancelled, IoError, LaunchError, UsePythonError
from use_python.invocation import LIFECYCLE, QUIET
from use_python.plugins.factory import TaskFactory
from use_python.plugins.loader import load_plugins
from use_python.reconcile import reconcile

DEFAULT_CONFIG = "use-python.toml"


def _setup_logger(level: int) -> logging.Logger:
    logger = logging.getLogger("use-python")
    logger.setLevel(level)
    handler = logging.StreamHandler()
    handler.setLevel(level)
    if level <= logging.DEBUG:
        handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    else:
        handler.setFormatter(logging.Formatter("%(message)s"))
    logger.handlers[:] = [handler]
    logger.propagate = False
    return logger


def _log_threshold(args: argparse.Namespace) -> int:
    if args.verbose:
        return logging.DEBUG
    if args.info:
        return logging.INFO
    if args.quiet:
        return QUIET
    return LIFECYCLE


def _build_tasks(config: LoadedConfig, factory: TaskFactory, ctx: Context) -> dict[str, Command]:
    tasks: dict[str, Command] = {}
    for i, raw in enumerate(config.tasks, start=1):
        try:
            tasks[raw["name"]] = factory.from_dict(raw, ctx)
        except ConfigurationError as e:
            raise ConfigurationError(f"Invalid task in {config.path} (index {i}): {e}") from e
    return tasks


def _run(args: argparse.Namespace, logger: logging.Logger) -> int:
    config_path: Path = args.config
    if not config_path.is_file():
        logger.error("Config file not found: %s", config_path)
        return 2
    config = load_config_file(config_path)
    desc = config.description or config_path.name
    ver = config.version if config.version is not None else "?"
    logger.info("# %s v%s @ %s", desc, ver, config.path)

    options = Options(dry_run=bool(args.dry_run))
    ctx = build_context(
        project_dir=config.project_dir,
        options=options,
        logger=logger,
        binary=args.python or config.python.binary,
        python_path=None if args.python else config.python.path,
        environment=config.python.environment,
    )

    loaded_plugins = load_plugins(plugin_dirs=list(args.plugins_dir))
    for err in loaded_plugins.errors:
        logger.warning("%s", err)
    factory = TaskFactory(loaded_plugins.plugins)
    logger.debug("Registered task kinds: %s", ", ".join(factory.registered_kinds))

    tasks = _build_tasks(config, factory, ctx)
    if args.list_tasks:
        for name, task in tasks.items():
            logger.log(QUIET, "%s%s", name, "" if task.requires_packages else " (no pip install)")
        return 0

    unknown = [t for t in args.tasks if t not in tasks]
    if unknown:
        known = ", ".join(tasks) or "(none)"
        logger.error("Unknown task(s): %s (known: %s)", ", ".join(unknown), known)
        return 2
    selected = [tasks[t] for t in args.tasks]

    # Installs must complete before any task that depends on the installed packages.
    needs_install = not selected or any(t.requires_packages for t in selected)
    if needs_install and not args.skip_install:
        logger.log(LIFECYCLE, "> pipInstall")
        decision = reconcile(
            ctx.python,
            config.python.requirements,
            config.python.reconcile_options(),
            cancel=ctx.cancel,
        )
        for req in decision.to_install:
            logger.info("├─ %s (%s)", req.pip_spec(), decision.reasons[req.key].value)

    for i, task in enumerate(selected, start=1):
        logger.log(LIFECYCLE, "> %s", task.name)
        msg = task.apply(ctx)
        logger.info("%s %s", "└─" if i == len(selected) else "├─", msg)

    logger.info("Done.")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="use-python")
    parser.add_argument(
        "tasks",
        nargs="*",
        help="Tasks to run, in order. Without tasks, only the declared pip requirements are installed.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path(DEFAULT_CONFIG),
        help=f"Config file (*.json, *.toml, *.yaml, *.yml). Default: ./{DEFAULT_CONFIG}",
    )
    parser.add_argument(
        "--plugins-dir",
        action="append",
        type=Path,
        default=[],
        help="Directory containing additional task plugins (*.py). Can be specified multiple times. "
        "Also supports USE_PYTHON_PLUGINS_DIRS and ~/.config/use-python/plugins.",
    )
    parser.add_argument(
        "--python",
        help="Python binary to use instead of the configured one.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log commands but do not execute them.",
    )
    parser.add_argument(
        "--skip-install",
        action="store_true",
        help="Do not install pip requirements before running tasks.",
    )
    parser.add_argument(
        "--list-tasks",
        action="store_true",
        help="List configured tasks and exit.",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("--verbose", action="store_true", help="Debug logs.")
    verbosity.add_argument("--info", action="store_true", help="Info logs.")
    verbosity.add_argument("--quiet", action="store_true", help="Only quiet-level output and errors.")
    args = parser.parse_args(argv)

    logger = _setup_logger(_log_threshold(args))

    try:
        return _run(args, logger)
    except (ConfigurationError, IoError, LaunchError) as e:
        logger.error("%s", e)
        return 2
    except ExecutionError as e:
        logger.error("%s", e)
        return e.returncode if e.returncode > 0 else 1
    except (InvocationCancelled, KeyboardInterrupt) as e:
        logger.error("Interrupted: %s", str(e) or "cancelled")
        return 130
    except UsePythonError as e:
        logger.error("%s", e)
        return 1
