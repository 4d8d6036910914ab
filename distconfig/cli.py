"""Command line interface for distconfig."""

import argparse
import logging
import pathlib
import sys

from distconfig.environment import ConfigEnvironment, EnvironmentContext, ScriptObject
from distconfig.errors import ConfigError
from distconfig.executable import PythonExecutable
from distconfig.loader import evaluate_config_file
from distconfig.target import TargetResolutionError, host_triple, parse_triple


def _configure_logging(*, verbose: int, quiet: int) -> logging.Logger:
    """Configure the distconfig logger.

    :param verbose: Verbosity count (0+).
    :param quiet: Quietness count (0+).
    :returns: Configured logger.
    """

    level: int = logging.INFO
    if quiet >= 2:
        level = logging.ERROR
    elif quiet >= 1:
        level = logging.WARNING
    elif verbose >= 1:
        level = logging.DEBUG

    logger: logging.Logger = logging.getLogger("distconfig")
    logger.setLevel(level)
    logger.propagate = False

    handler: logging.Handler = logging.StreamHandler(stream=sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger.handlers.clear()
    logger.addHandler(handler)
    return logger


def _resolve_cache_root(cache_dir: pathlib.Path | None) -> pathlib.Path:
    """Resolve the distribution cache directory.

    Defaults to ``.distconfig_cache`` under the current working directory.

    :param cache_dir: Optional cache directory override.
    :returns: Directory distributions are downloaded and extracted into.
    """

    root: pathlib.Path
    if cache_dir is not None:
        root = cache_dir
    else:
        root = pathlib.Path.cwd() / ".distconfig_cache"
    return root / "python_distributions"


def _report_executables(env: ConfigEnvironment, logger: logging.Logger) -> None:
    for name, value in env.symbols.items():
        if isinstance(value, ScriptObject) and isinstance(value.value, PythonExecutable):
            exe: PythonExecutable = value.value
            logger.info(
                f"distconfig: {name}: executable {exe.name} for {exe.target_triple} "
                f"({len(exe.source_modules)} source modules, {len(exe.extension_modules)} extension modules, "
                f"{len(exe.package_resources)} package resources)"
            )


def main(argv: list[str] | None = None) -> int:
    """Run the distconfig CLI.

    :param argv: Optional argv list (excluding program name).
    :returns: Exit code.
    """

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="distconfig",
        description="Evaluate a Python distribution build configuration script.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_run = subparsers.add_parser(
        "run",
        help="Evaluate a configuration file.",
    )
    p_run.add_argument(
        "config",
        type=pathlib.Path,
        help="Path to the configuration file.",
    )
    p_run.add_argument(
        "--target",
        type=str,
        default=None,
        help="Target triple to build for (e.g. x86_64-unknown-linux-gnu). Defaults to the host.",
    )
    p_run.add_argument(
        "--cache-dir",
        type=pathlib.Path,
        default=None,
        help="Directory for downloaded distributions (default: ./.distconfig_cache).",
    )
    p_run.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable verbose logging. Pass multiple times for more detail.",
    )
    p_run.add_argument(
        "-q",
        "--quiet",
        action="count",
        default=0,
        help="Reduce logging. Pass multiple times to suppress more output.",
    )

    ns = parser.parse_args(argv)
    if ns.command == "run":
        logger: logging.Logger = _configure_logging(verbose=ns.verbose, quiet=ns.quiet)
        try:
            host: str = host_triple()
            target: str = str(parse_triple(ns.target)) if ns.target is not None else host
        except TargetResolutionError as e:
            logger.error(f"error: {e}")
            return 2

        context: EnvironmentContext = EnvironmentContext(
            logger=logger,
            cwd=ns.config.resolve().parent,
            build_host_triple=host,
            build_target_triple=target,
            python_distributions_path=_resolve_cache_root(ns.cache_dir),
            verbose=ns.verbose >= 1,
        )

        try:
            env: ConfigEnvironment = evaluate_config_file(ns.config, context)
        except ConfigError as e:
            logger.error(f"error[{e.code}]: {e.message}")
            if e.label is not None:
                logger.error(f"  --> {e.label}")
            return 1

        _report_executables(env, logger)
        return 0

    raise AssertionError(f"Unhandled command: {ns.command}")
