import logging
import pathlib
import sys
import zipfile

import pytest

from conftest import PY_MAJOR_MINOR, write_files
from distconfig import packaging_tool
from distconfig.distribution import DistributionFlavor, StandaloneDistribution
from distconfig.packaging_tool import PackagingToolError

LOGGER: logging.Logger = logging.getLogger("distconfig.tests")


@pytest.fixture
def dist(dist_dir: pathlib.Path) -> StandaloneDistribution:
    return StandaloneDistribution.from_directory(dist_dir, flavor=DistributionFlavor.STANDALONE)


def test_run_returns_output() -> None:
    output: str = packaging_tool._run(
        [sys.executable, "-c", "print('hello')"],
        env=packaging_tool._process_env({}),
        cwd=None,
        logger=LOGGER,
    )
    assert output.strip() == "hello"


def test_run_failure_includes_output() -> None:
    with pytest.raises(PackagingToolError) as ei:
        packaging_tool._run(
            [sys.executable, "-c", "import sys; print('boom'); sys.exit(3)"],
            env=packaging_tool._process_env({}),
            cwd=None,
            logger=LOGGER,
        )

    assert "exited with code 3" in str(ei.value)
    assert "boom" in str(ei.value)


def test_run_missing_program(tmp_path: pathlib.Path) -> None:
    with pytest.raises(PackagingToolError, match="unable to run"):
        packaging_tool._run([str(tmp_path / "missing")], env={}, cwd=None, logger=LOGGER)


def test_process_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DISTCONFIG_TEST_VAR", "old")

    env: dict[str, str] = packaging_tool._process_env({"DISTCONFIG_TEST_VAR": "new", "OTHER": "1"})

    assert env["DISTCONFIG_TEST_VAR"] == "new"
    assert env["OTHER"] == "1"


def test_find_resources_requires_directory(dist: StandaloneDistribution, tmp_path: pathlib.Path) -> None:
    path: pathlib.Path = tmp_path / "file.txt"
    path.write_text("", encoding="utf-8")

    with pytest.raises(PackagingToolError, match="is not a directory"):
        packaging_tool.find_resources(dist, path)


def test_site_packages_layout(dist: StandaloneDistribution, tmp_path: pathlib.Path) -> None:
    assert packaging_tool._site_packages(dist, tmp_path) == tmp_path / "lib" / f"python{PY_MAJOR_MINOR}" / "site-packages"


def test_pip_install_runs_ensurepip_when_missing(
    dist: StandaloneDistribution,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    commands: list[list[str]] = []

    def fake_run(cmd, *, env, cwd, logger):
        commands.append(cmd)
        if cmd[-1] == "--version":
            raise PackagingToolError("No module named pip")
        return ""

    monkeypatch.setattr(packaging_tool, "_run", fake_run)

    resources = packaging_tool.pip_install(dist=dist, verbose=True, args=["six"], extra_envs={}, logger=LOGGER)

    assert resources == []
    assert commands[1][-1] == "ensurepip"
    assert "--verbose" in commands[2]
    assert commands[2].index("--verbose") < commands[2].index("install")


def test_setup_py_install_requires_site_packages(
    dist: StandaloneDistribution,
    tmp_path: pathlib.Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    write_files(tmp_path / "pkg", {"setup.py": ""})
    monkeypatch.setattr(packaging_tool, "_run", lambda cmd, *, env, cwd, logger: "")

    with pytest.raises(PackagingToolError, match="did not create"):
        packaging_tool.setup_py_install(
            dist=dist,
            package_path=tmp_path / "pkg",
            verbose=False,
            extra_envs={},
            extra_global_arguments=[],
            logger=LOGGER,
        )


def test_setup_py_install_unpacks_zipped_eggs(
    dist: StandaloneDistribution,
    tmp_path: pathlib.Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    write_files(tmp_path / "pkg", {"setup.py": ""})

    def fake_run(cmd, *, env, cwd, logger):
        site_packages = pathlib.Path(cmd[cmd.index("--prefix") + 1]) / "lib" / f"python{PY_MAJOR_MINOR}" / "site-packages"
        site_packages.mkdir(parents=True)
        with zipfile.ZipFile(site_packages / "zipped-1.0-py3.egg", mode="w") as zf:
            zf.writestr("zipped/__init__.py", "# zipped\n")
            zf.writestr("zipped/core.py", "# core\n")
            zf.writestr("EGG-INFO/PKG-INFO", "Name: zipped\n")
        return ""

    monkeypatch.setattr(packaging_tool, "_run", fake_run)

    resources = packaging_tool.setup_py_install(
        dist=dist,
        package_path=tmp_path / "pkg",
        verbose=False,
        extra_envs={},
        extra_global_arguments=[],
        logger=LOGGER,
    )

    assert [r.name for r in resources] == ["zipped", "zipped.core"]
    assert resources[0].source.data == b"# zipped\n"


def test_setup_py_install_rejects_corrupt_egg(
    dist: StandaloneDistribution,
    tmp_path: pathlib.Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    write_files(tmp_path / "pkg", {"setup.py": ""})

    def fake_run(cmd, *, env, cwd, logger):
        site_packages = pathlib.Path(cmd[cmd.index("--prefix") + 1]) / "lib" / f"python{PY_MAJOR_MINOR}" / "site-packages"
        write_files(site_packages, {"broken-1.0-py3.egg": "not a zip"})
        return ""

    monkeypatch.setattr(packaging_tool, "_run", fake_run)

    with pytest.raises(PackagingToolError, match="unable to unpack"):
        packaging_tool.setup_py_install(
            dist=dist,
            package_path=tmp_path / "pkg",
            verbose=False,
            extra_envs={},
            extra_global_arguments=[],
            logger=LOGGER,
        )
