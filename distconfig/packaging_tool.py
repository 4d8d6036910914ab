"""Running Python packaging tools against a distribution.

Every function takes the resolved :class:`StandaloneDistribution`, runs
tooling with its interpreter where needed, and returns the resources that
ended up on disk. Tool output is captured so failures can report it.
"""

import logging
import os
import pathlib
import subprocess
import tempfile
import zipfile

from distconfig.distribution import StandaloneDistribution
from distconfig.resources import Resource, find_python_resources


class PackagingToolError(RuntimeError):
    """Raised when a packaging tool fails."""


def _run(
    cmd: list[str],
    *,
    env: dict[str, str],
    cwd: pathlib.Path | None,
    logger: logging.Logger,
) -> str:
    """Run a command, capturing combined stdout/stderr.

    :param cmd: Command line.
    :param env: Full process environment.
    :param cwd: Working directory.
    :param logger: Logger; output lines are logged at debug level.
    :returns: Captured output.
    :raises PackagingToolError: If the command cannot start or exits non-zero.
    """

    if logger.isEnabledFor(logging.DEBUG) is True:
        logger.debug(f"distconfig: running {' '.join(cmd)}")

    try:
        proc = subprocess.run(
            cmd,
            env=env,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            check=False,
        )
    except OSError as e:
        raise PackagingToolError(f"unable to run {cmd[0]}: {e}") from e

    output: str = proc.stdout.decode("utf-8", errors="replace")
    if logger.isEnabledFor(logging.DEBUG) is True:
        for line in output.splitlines():
            logger.debug(line)

    if proc.returncode != 0:
        raise PackagingToolError(
            f"{' '.join(cmd)} exited with code {proc.returncode}:\n{output}"
        )
    return output


def _process_env(extra_envs: dict[str, str]) -> dict[str, str]:
    env: dict[str, str] = dict(os.environ)
    env.update(extra_envs)
    return env


def find_resources(
    dist: StandaloneDistribution,
    path: pathlib.Path,
    *,
    logger: logging.Logger | None = None,
) -> list[Resource]:
    """Discover resources under ``path`` using the distribution's module suffixes.

    :raises PackagingToolError: If ``path`` is not a directory.
    """

    if path.is_dir() is False:
        raise PackagingToolError(f"{path} is not a directory")

    resources: list[Resource] = find_python_resources(
        path,
        extension_suffixes=dist.extension_module_suffixes or None,
    )
    if logger is not None and logger.isEnabledFor(logging.DEBUG) is True:
        logger.debug(f"distconfig: found {len(resources)} resources in {path}")
    return resources


def _ensure_pip(dist: StandaloneDistribution, *, env: dict[str, str], logger: logging.Logger) -> None:
    try:
        _run([str(dist.python_exe), "-m", "pip", "--version"], env=env, cwd=None, logger=logger)
        return
    except PackagingToolError:
        logger.info("distconfig: pip not available in distribution; running ensurepip")
    _run([str(dist.python_exe), "-m", "ensurepip"], env=env, cwd=None, logger=logger)


def pip_install(
    *,
    dist: StandaloneDistribution,
    verbose: bool,
    args: list[str],
    extra_envs: dict[str, str],
    logger: logging.Logger,
) -> list[Resource]:
    """Run ``pip install`` with the distribution's interpreter.

    Packages are installed into a temporary target directory; the returned
    resources hold their content in memory.

    :param dist: Resolved distribution.
    :param verbose: Pass ``--verbose`` to pip.
    :param args: Extra ``pip install`` arguments (requirements, flags).
    :param extra_envs: Environment variable overrides.
    :param logger: Logger for progress output.
    :returns: Installed resources.
    :raises PackagingToolError: If pip fails.
    """

    env: dict[str, str] = _process_env(extra_envs)
    _ensure_pip(dist, env=env, logger=logger)

    with tempfile.TemporaryDirectory(prefix="distconfig_pip_") as td:
        target_dir: pathlib.Path = pathlib.Path(td) / "install"
        cmd: list[str] = [str(dist.python_exe), "-m", "pip", "--disable-pip-version-check"]
        if verbose is True:
            cmd.append("--verbose")
        cmd.extend(["install", "--target", str(target_dir), "--no-compile", *args])

        logger.info(f"distconfig: pip install {' '.join(args)}")
        _run(cmd, env=env, cwd=None, logger=logger)

        if target_dir.is_dir() is False:
            return []
        return [r.to_memory() for r in find_resources(dist, target_dir, logger=logger)]


def _site_packages(dist: StandaloneDistribution, prefix: pathlib.Path) -> pathlib.Path:
    if dist.target.is_windows is True:
        return prefix / "Lib" / "site-packages"
    return prefix / "lib" / f"python{dist.python_major_minor_version}" / "site-packages"


def read_virtualenv(
    *,
    dist: StandaloneDistribution,
    path: pathlib.Path,
    logger: logging.Logger | None = None,
) -> list[Resource]:
    """List resources installed in a virtualenv created for this distribution.

    :raises PackagingToolError: If the virtualenv has no matching site-packages.
    """

    site_packages: pathlib.Path = _site_packages(dist, path)
    if site_packages.is_dir() is False:
        raise PackagingToolError(
            f"{path} does not look like a Python {dist.python_major_minor_version} virtualenv: "
            f"{site_packages} does not exist"
        )
    return find_resources(dist, site_packages, logger=logger)


def setup_py_install(
    *,
    dist: StandaloneDistribution,
    package_path: pathlib.Path,
    verbose: bool,
    extra_envs: dict[str, str],
    extra_global_arguments: list[str],
    logger: logging.Logger,
) -> list[Resource]:
    """Run ``setup.py install`` for a package and collect what it installed.

    :param dist: Resolved distribution.
    :param package_path: Directory containing ``setup.py``.
    :param verbose: Pass ``--verbose`` to setup.py.
    :param extra_envs: Environment variable overrides.
    :param extra_global_arguments: Arguments placed before the ``install`` command.
    :param logger: Logger for progress output.
    :returns: Installed resources, content held in memory.
    :raises PackagingToolError: If setup.py is missing or fails.
    """

    if (package_path / "setup.py").is_file() is False:
        raise PackagingToolError(f"no setup.py found in {package_path}")

    env: dict[str, str] = _process_env(extra_envs)
    with tempfile.TemporaryDirectory(prefix="distconfig_setup_py_") as td:
        prefix: pathlib.Path = pathlib.Path(td) / "install"
        cmd: list[str] = [str(dist.python_exe), "setup.py"]
        if verbose is True:
            cmd.append("--verbose")
        cmd.extend(extra_global_arguments)
        # Without these flags setuptools installs a zipped .egg instead of a
        # plain package tree.
        cmd.extend(
            [
                "install",
                "--prefix",
                str(prefix),
                "--no-compile",
                "--single-version-externally-managed",
                "--record",
                str(pathlib.Path(td) / "record.txt"),
            ]
        )

        logger.info(f"distconfig: running setup.py install for {package_path}")
        _run(cmd, env=env, cwd=package_path, logger=logger)

        site_packages: pathlib.Path = _site_packages(dist, prefix)
        if site_packages.is_dir() is False:
            raise PackagingToolError(f"setup.py install did not create {site_packages}")

        resources: list[Resource] = find_resources(dist, site_packages, logger=logger)
        for egg in sorted(site_packages.glob("*.egg")):
            if egg.is_dir() is True:
                resources.extend(find_resources(dist, egg, logger=logger))
            elif egg.is_file() is True:
                extracted: pathlib.Path = _extract_egg(egg, pathlib.Path(td) / "eggs" / egg.name)
                resources.extend(find_resources(dist, extracted, logger=logger))

        return [r.to_memory() for r in resources]


def _extract_egg(egg: pathlib.Path, dest_dir: pathlib.Path) -> pathlib.Path:
    """Unpack a zipped egg so its contents can be scanned.

    :param egg: ``.egg`` zip file.
    :param dest_dir: Directory to unpack into.
    :returns: ``dest_dir``.
    :raises PackagingToolError: If the egg is not a readable zip file.
    """

    dest_dir.mkdir(parents=True, exist_ok=True)
    try:
        with zipfile.ZipFile(egg, mode="r") as zf:
            zf.extractall(dest_dir)
    except (zipfile.BadZipFile, OSError) as e:
        raise PackagingToolError(f"unable to unpack {egg}: {e}") from e
    return dest_dir
