"""Environment construction and configuration file evaluation."""

import logging
import pathlib

from distconfig.config import register_config_module
from distconfig.environment import ConfigEnvironment, EnvironmentContext
from distconfig.executable import register_executable_module
from distconfig.python_distribution import register_python_distribution_module


def build_environment(context: EnvironmentContext) -> ConfigEnvironment:
    """Create an environment with every script-visible module registered.

    :param context: Ambient state for the evaluation.
    :returns: Ready-to-use environment.
    """

    env: ConfigEnvironment = ConfigEnvironment(context=context)
    register_config_module(env)
    register_executable_module(env)
    register_python_distribution_module(env)
    return env


def evaluate_config_file(path: pathlib.Path, context: EnvironmentContext) -> ConfigEnvironment:
    """Evaluate a configuration file.

    :param path: Configuration file.
    :param context: Ambient state; ``config_path`` is set to ``path``.
    :returns: The environment after evaluation, holding the script's globals.
    :raises ConfigError: If evaluation fails.
    """

    context.config_path = path
    env: ConfigEnvironment = build_environment(context)

    logger: logging.Logger = context.logger
    logger.info(f"distconfig: evaluating {path}")
    env.exec_file(path)
    return env
