"""Python resource records and filesystem discovery.

Discovery and install operations return immutable records describing what
they found: source modules, extension modules and package resources (non-code
files owned by a package). Content is either held in memory or referenced
lazily by path.
"""

from collections.abc import Iterator
from dataclasses import dataclass, replace
import enum
import importlib.machinery
import pathlib


STDLIB_TEST_PACKAGES: tuple[str, ...] = (
    "bsddb.test",
    "ctypes.test",
    "distutils.tests",
    "email.test",
    "idlelib.idle_test",
    "json.tests",
    "lib-tk.test",
    "lib2to3.tests",
    "sqlite3.test",
    "test",
    "tkinter.test",
    "unittest.test",
)


def is_stdlib_test_package(name: str) -> bool:
    """Whether a package belongs to one of the standard library test trees.

    :param name: Dotted package name.
    """

    for package in STDLIB_TEST_PACKAGES:
        if name == package or name.startswith(f"{package}.") is True:
            return True
    return False


def _in_packages(name: str, packages: list[str]) -> bool:
    for package in packages:
        if name == package or name.startswith(f"{package}.") is True:
            return True
    return False


@dataclass(frozen=True, slots=True)
class FileData:
    """File content held in memory or referenced by path.

    :ivar data: In-memory content.
    :ivar path: Filesystem path read on demand.
    """

    data: bytes | None = None
    path: pathlib.Path | None = None

    def resolve(self) -> bytes:
        if self.data is not None:
            return self.data
        if self.path is None:
            raise ValueError("FileData has neither data nor path")
        return self.path.read_bytes()

    def to_memory(self) -> "FileData":
        if self.data is not None:
            return self
        return FileData(data=self.resolve(), path=None)


@dataclass(frozen=True, slots=True)
class SourceModule:
    """A Python source module.

    :ivar name: Fully qualified module name.
    :ivar source: Module source.
    :ivar is_package: Whether the module is a package ``__init__``.
    """

    name: str
    source: FileData
    is_package: bool

    def is_in_packages(self, packages: list[str]) -> bool:
        return _in_packages(self.name, packages)

    def to_memory(self) -> "SourceModule":
        return replace(self, source=self.source.to_memory())


@dataclass(frozen=True, slots=True)
class ExtensionModule:
    """A compiled extension module.

    :ivar name: Fully qualified module name.
    :ivar variant: Build variant name (distribution modules) or ``None``.
    :ivar required: Whether the interpreter needs it to start.
    :ivar builtin: Whether it is compiled into libpython.
    :ivar links: Names of libraries it links against.
    :ivar licenses: SPDX license identifiers of linked libraries, if known.
    :ivar shared_library: Shared library content, when built as a standalone file.
    """

    name: str
    variant: str | None = None
    required: bool = False
    builtin: bool = False
    links: tuple[str, ...] = ()
    licenses: tuple[str, ...] | None = None
    shared_library: FileData | None = None

    def is_in_packages(self, packages: list[str]) -> bool:
        return _in_packages(self.name, packages)

    def to_memory(self) -> "ExtensionModule":
        if self.shared_library is None:
            return self
        return replace(self, shared_library=self.shared_library.to_memory())


@dataclass(frozen=True, slots=True)
class PackageResource:
    """A non-module file owned by a package.

    :ivar leaf_package: Package that owns the file.
    :ivar relative_name: Path of the file relative to the package directory.
    :ivar data: File content.
    """

    leaf_package: str
    relative_name: str
    data: FileData

    def is_in_packages(self, packages: list[str]) -> bool:
        return _in_packages(self.leaf_package, packages)

    def to_memory(self) -> "PackageResource":
        return replace(self, data=self.data.to_memory())


Resource = SourceModule | ExtensionModule | PackageResource


class ExtensionModuleFilter(enum.Enum):
    """Which distribution extension modules are eligible."""

    MINIMAL = "minimal"
    ALL = "all"
    NO_LIBRARIES = "no-libraries"
    NO_GPL = "no-gpl"

    @classmethod
    def parse(cls, value: str) -> "ExtensionModuleFilter":
        for member in cls:
            if member.value == value:
                return member
        raise ValueError(f"{value} is not a valid extension module filter")


class ResourcesPolicyKind(enum.Enum):
    IN_MEMORY_ONLY = "in-memory-only"
    FILESYSTEM_RELATIVE_ONLY = "filesystem-relative-only"
    PREFER_IN_MEMORY_FALLBACK_FILESYSTEM_RELATIVE = "prefer-in-memory-fallback-filesystem-relative"


@dataclass(frozen=True, slots=True)
class ResourcesPolicy:
    """Where resources of a built executable are loaded from.

    :ivar kind: Policy kind.
    :ivar prefix: Directory prefix relative to the executable for filesystem kinds.
    """

    kind: ResourcesPolicyKind
    prefix: str | None = None

    @classmethod
    def parse(cls, value: str) -> "ResourcesPolicy":
        if value == ResourcesPolicyKind.IN_MEMORY_ONLY.value:
            return cls(kind=ResourcesPolicyKind.IN_MEMORY_ONLY)

        for kind in (
            ResourcesPolicyKind.FILESYSTEM_RELATIVE_ONLY,
            ResourcesPolicyKind.PREFER_IN_MEMORY_FALLBACK_FILESYSTEM_RELATIVE,
        ):
            marker: str = f"{kind.value}:"
            if value.startswith(marker) is True and len(value) > len(marker):
                return cls(kind=kind, prefix=value[len(marker) :])

        raise ValueError(f"resources policy {value} is not recognized")

    def __str__(self) -> str:
        if self.prefix is None:
            return self.kind.value
        return f"{self.kind.value}:{self.prefix}"


def walk_sorted(root: pathlib.Path, *, skip_dirs: frozenset[str]) -> Iterator[pathlib.Path]:
    """Yield files under ``root`` depth-first, siblings in name order.

    Directories and files are interleaved by name, so ``bar/__init__.py`` is
    yielded before ``baz.py``.

    :param root: Directory to walk.
    :param skip_dirs: Directory names never descended into.
    """

    for child in sorted(root.iterdir(), key=lambda p: p.name):
        if child.is_dir() is True:
            if child.name in skip_dirs:
                continue
            yield from walk_sorted(child, skip_dirs=skip_dirs)
        elif child.is_file() is True:
            yield child


def _leaf_package(root: pathlib.Path, dirs: tuple[str, ...]) -> tuple[str, str] | None:
    """Find the deepest package directory among ``dirs``.

    :returns: ``(package, path prefix within that package)`` or ``None``.
    """

    for depth in range(len(dirs), 0, -1):
        package_parts: tuple[str, ...] = dirs[:depth]
        if all(p.isidentifier() for p in package_parts) is False:
            continue
        if (root.joinpath(*package_parts) / "__init__.py").is_file() is True:
            rest: str = "/".join(dirs[depth:])
            return ".".join(package_parts), rest
    return None


def find_python_resources(
    root: pathlib.Path,
    *,
    extension_suffixes: tuple[str, ...] | None = None,
    skip_dirs: frozenset[str] = frozenset({"__pycache__"}),
) -> list[Resource]:
    """Discover Python resources in a directory tree.

    Source files become :class:`SourceModule`, files with an extension-module
    suffix become :class:`ExtensionModule` and other files inside packages
    become :class:`PackageResource`. Content is referenced by path. Order
    follows :func:`walk_sorted`.

    :param root: Directory to scan (e.g. a ``site-packages``).
    :param extension_suffixes: Filename suffixes of extension modules.
    :param skip_dirs: Directory names to ignore.
    :returns: Discovered resources.
    """

    if extension_suffixes is None:
        extension_suffixes = tuple(importlib.machinery.EXTENSION_SUFFIXES)
    # Longest first so ".cpython-311-x86_64-linux-gnu.so" wins over ".so".
    suffixes: list[str] = sorted(extension_suffixes, key=len, reverse=True)

    resources: list[Resource] = []
    for path in walk_sorted(root, skip_dirs=skip_dirs):
        rel: pathlib.Path = path.relative_to(root)
        dirs: tuple[str, ...] = rel.parts[:-1]
        filename: str = rel.parts[-1]

        if filename.endswith((".pyc", ".pyo")) is True:
            continue

        if filename.endswith(".py") is True:
            stem: str = filename[: -len(".py")]
            if all(p.isidentifier() for p in dirs) is False or stem.isidentifier() is False:
                continue
            if stem == "__init__":
                if len(dirs) == 0:
                    continue
                resources.append(
                    SourceModule(name=".".join(dirs), source=FileData(path=path), is_package=True)
                )
            else:
                resources.append(
                    SourceModule(
                        name=".".join((*dirs, stem)),
                        source=FileData(path=path),
                        is_package=False,
                    )
                )
            continue

        suffix: str | None = None
        for candidate in suffixes:
            if filename.endswith(candidate) is True:
                suffix = candidate
                break
        if suffix is not None:
            module: str = filename[: -len(suffix)]
            if all(p.isidentifier() for p in dirs) is True and module.isidentifier() is True:
                resources.append(
                    ExtensionModule(
                        name=".".join((*dirs, module)),
                        shared_library=FileData(path=path),
                    )
                )
                continue

        owner: tuple[str, str] | None = _leaf_package(root, dirs)
        if owner is None:
            continue
        package, prefix = owner
        relative_name: str = f"{prefix}/{filename}" if len(prefix) > 0 else filename
        resources.append(
            PackageResource(leaf_package=package, relative_name=relative_name, data=FileData(path=path))
        )

    return resources
