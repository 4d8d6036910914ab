import json
import logging
import pathlib
import sys

import pytest

from distconfig.environment import ConfigEnvironment, EnvironmentContext, ScriptObject
from distconfig.loader import build_environment

TARGET: str = "x86_64-unknown-linux-gnu"

PY_MAJOR_MINOR: str = f"{sys.version_info.major}.{sys.version_info.minor}"

STDLIB_FILES: dict[str, str] = {
    "os.py": "# os\n",
    "json/__init__.py": "# json\n",
    "json/decoder.py": "# decoder\n",
    "email/__init__.py": "",
    "email/architecture.rst": "email architecture\n",
    "lib2to3/__init__.py": "",
    "lib2to3/Grammar.txt": "grammar\n",
    "lib2to3/tests/__init__.py": "",
    "lib2to3/tests/data/README": "readme\n",
    "test/__init__.py": "",
    "test/test_os.py": "# test_os\n",
    "test/cfgparser.1": "[section]\n",
    "site-packages/README.txt": "site\n",
    "json/__pycache__/decoder.cpython.pyc": "",
}

EXTENSIONS: dict[str, list[dict]] = {
    "_io": [{"variant": "default", "required": True, "in_core": True, "links": []}],
    "_json": [{"variant": "default", "required": False, "in_core": True, "links": []}],
    "_ssl": [
        {
            "variant": "default",
            "required": False,
            "in_core": False,
            "links": [{"name": "ssl"}, {"name": "crypto"}],
            "licenses": ["OpenSSL"],
        }
    ],
    "readline": [
        {
            "variant": "default",
            "required": False,
            "in_core": False,
            "links": [{"name": "readline"}],
            "licenses": ["GPL-3.0"],
        },
        {
            "variant": "libedit",
            "required": False,
            "in_core": False,
            "links": [{"name": "edit"}],
            "licenses": ["BSD-3-Clause"],
        },
    ],
    "_sqlite3": [
        {
            "variant": "default",
            "required": False,
            "in_core": False,
            "links": [{"name": "sqlite3"}],
            "shared_lib": "install/lib/_sqlite3.so",
        }
    ],
}


def write_files(root: pathlib.Path, files: dict[str, str]) -> None:
    for rel, content in files.items():
        path: pathlib.Path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")


@pytest.fixture
def dist_dir(tmp_path: pathlib.Path) -> pathlib.Path:
    """An extracted distribution whose interpreter is the one running the tests."""

    root: pathlib.Path = tmp_path / "dist" / "python"
    stdlib_rel: str = f"install/lib/python{PY_MAJOR_MINOR}"
    write_files(root / stdlib_rel, STDLIB_FILES)

    info: dict = {
        "version": "7",
        "target_triple": TARGET,
        "python_version": f"{PY_MAJOR_MINOR}.0",
        "python_exe": sys.executable,
        "python_paths": {"stdlib": stdlib_rel},
        "python_stdlib_test_packages": ["test"],
        "python_extension_module_suffixes": [".abi3.so", ".so"],
        "build_info": {"extensions": EXTENSIONS},
    }
    (root / "PYTHON.json").write_text(json.dumps(info), encoding="utf-8")
    return root


@pytest.fixture
def context(tmp_path: pathlib.Path) -> EnvironmentContext:
    return EnvironmentContext(
        logger=logging.getLogger("distconfig.tests"),
        cwd=tmp_path,
        build_host_triple=TARGET,
        build_target_triple=TARGET,
        python_distributions_path=tmp_path / "distributions",
    )


@pytest.fixture
def env(context: EnvironmentContext) -> ConfigEnvironment:
    return build_environment(context)


@pytest.fixture
def local_dist(env: ConfigEnvironment, dist_dir: pathlib.Path) -> ScriptObject:
    value = env.eval(f"PythonDistribution('unused', local_path={str(dist_dir)!r})")
    assert isinstance(value, ScriptObject)
    return value
