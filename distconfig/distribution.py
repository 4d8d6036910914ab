"""Standalone Python distributions.

A standalone distribution is an archive containing a relocatable CPython
build plus a ``python/PYTHON.json`` file describing it (interpreter path,
standard library location, extension module variants, ...).
:func:`resolve_distribution` turns a location into a local, verified,
extracted :class:`StandaloneDistribution`.
"""

from dataclasses import dataclass
import enum
import functools
import hashlib
import json
import logging
import pathlib
import tarfile
import time

import requests
import zstandard

from distconfig.bytecode import BytecodeCompiler
from distconfig.config import EmbeddedPythonConfig
from distconfig.errors import InternalInvariantViolation
from distconfig.executable import PythonExecutable
from distconfig.resources import (
    ExtensionModule,
    ExtensionModuleFilter,
    FileData,
    PackageResource,
    Resource,
    ResourcesPolicy,
    SourceModule,
    find_python_resources,
    is_stdlib_test_package,
)
from distconfig.target import TargetResolutionError, TargetTriple, parse_triple


class DistributionError(RuntimeError):
    """Raised when a distribution cannot be obtained or understood."""


class DistributionFlavor(enum.Enum):
    """Build/linkage variant of a distribution."""

    STANDALONE = "standalone"
    STANDALONE_STATIC = "standalone_static"
    STANDALONE_DYNAMIC = "standalone_dynamic"

    @classmethod
    def parse(cls, value: str) -> "DistributionFlavor":
        for member in cls:
            if member.value == value:
                return member
        raise ValueError(f"unknown distribution flavor {value}")


@dataclass(frozen=True, slots=True)
class LocalDistributionLocation:
    """A distribution archive (or extracted directory) on the local filesystem.

    :ivar local_path: Archive file or extracted distribution directory.
    :ivar sha256: Expected SHA-256 of the archive.
    """

    local_path: str
    sha256: str | None


@dataclass(frozen=True, slots=True)
class UrlDistributionLocation:
    """A distribution archive to download.

    :ivar url: Archive URL.
    :ivar sha256: Expected SHA-256, or ``None`` to use the digest published
        next to the artifact as ``<url>.sha256``.
    """

    url: str
    sha256: str | None


DistributionLocation = LocalDistributionLocation | UrlDistributionLocation


_ARCHIVE_SUFFIXES: tuple[str, ...] = (".tar.zst", ".tar.gz", ".tgz", ".tar")

_STDLIB_SKIP_DIRS: frozenset[str] = frozenset({"__pycache__", "site-packages", "lib-dynload"})


class StandaloneDistribution:
    """An extracted standalone distribution.

    Instances are never mutated after construction and can be shared freely.
    """

    def __init__(
        self,
        *,
        root: pathlib.Path,
        flavor: DistributionFlavor,
        target_triple: str,
        python_version: str,
        python_exe: pathlib.Path,
        stdlib_path: pathlib.Path,
        extension_modules: dict[str, tuple[ExtensionModule, ...]],
        stdlib_test_packages: tuple[str, ...],
        extension_module_suffixes: tuple[str, ...],
    ) -> None:
        self.root: pathlib.Path = root
        self.flavor: DistributionFlavor = flavor
        self.target_triple: str = target_triple
        self.python_version: str = python_version
        self.python_exe: pathlib.Path = python_exe
        self.stdlib_path: pathlib.Path = stdlib_path
        self.extension_modules: dict[str, tuple[ExtensionModule, ...]] = extension_modules
        self.stdlib_test_packages: tuple[str, ...] = stdlib_test_packages
        self.extension_module_suffixes: tuple[str, ...] = extension_module_suffixes

    @classmethod
    def from_directory(cls, root: pathlib.Path, *, flavor: DistributionFlavor) -> "StandaloneDistribution":
        """Load a distribution from its extracted ``python/`` directory.

        :param root: Directory containing ``PYTHON.json``.
        :param flavor: Flavor the distribution was requested as.
        :returns: Parsed distribution.
        :raises DistributionError: If the directory is not a usable distribution.
        """

        json_path: pathlib.Path = root / "PYTHON.json"
        if json_path.is_file() is False:
            raise DistributionError(
                f"{root} does not look like a standalone Python distribution: PYTHON.json not found"
            )
        try:
            info: dict = json.loads(json_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise DistributionError(f"unable to read {json_path}: {e}") from e

        try:
            python_exe: pathlib.Path = root / info["python_exe"]
            stdlib_path: pathlib.Path = root / info["python_paths"]["stdlib"]
            python_version: str = info["python_version"]
            target_triple: str = info["target_triple"]
        except (KeyError, TypeError) as e:
            raise DistributionError(f"{json_path} is missing required field {e}") from e

        extension_modules: dict[str, tuple[ExtensionModule, ...]] = {}
        try:
            build_info: dict = info.get("build_info") or {}
            extensions: dict = build_info.get("extensions") or {}
            for name, entries in extensions.items():
                extension_modules[name] = tuple(_extension_variant(root, name, entry) for entry in entries)
        except (AttributeError, KeyError, TypeError) as e:
            raise DistributionError(f"{json_path} has malformed build_info.extensions: {e}") from e

        suffixes: list[str] = info.get("python_extension_module_suffixes") or []
        return cls(
            root=root,
            flavor=flavor,
            target_triple=target_triple,
            python_version=python_version,
            python_exe=python_exe,
            stdlib_path=stdlib_path,
            extension_modules=extension_modules,
            stdlib_test_packages=tuple(info.get("python_stdlib_test_packages") or ()),
            extension_module_suffixes=tuple(suffixes),
        )

    @property
    def python_major_minor_version(self) -> str:
        return ".".join(self.python_version.split(".")[:2])

    @property
    def target(self) -> TargetTriple:
        try:
            return parse_triple(self.target_triple)
        except TargetResolutionError as e:
            raise DistributionError(str(e)) from e

    def create_bytecode_compiler(self, *, logger: logging.Logger | None = None) -> BytecodeCompiler:
        return BytecodeCompiler(self.python_exe, logger=logger)

    def filter_extension_modules(
        self,
        extension_filter: ExtensionModuleFilter,
        preferred_variants: dict[str, str] | None,
        *,
        logger: logging.Logger | None = None,
    ) -> list[ExtensionModule]:
        """Select one variant per extension module and apply a filter.

        Modules the interpreter requires are always kept.

        :param extension_filter: Which modules are eligible.
        :param preferred_variants: Module name to variant name overrides.
        :param logger: Optional logger for debug output.
        :returns: Selected modules in distribution order.
        :raises DistributionError: If a preferred variant does not exist.
        """

        selected: list[ExtensionModule] = []
        for name, variants in self.extension_modules.items():
            if len(variants) == 0:
                continue

            chosen: ExtensionModule = variants[0]
            if preferred_variants is not None and name in preferred_variants:
                wanted: str = preferred_variants[name]
                matches: list[ExtensionModule] = [v for v in variants if v.variant == wanted]
                if len(matches) == 0:
                    available: str = ", ".join(str(v.variant) for v in variants)
                    raise DistributionError(
                        f"extension module {name} has no variant {wanted} (available: {available})"
                    )
                chosen = matches[0]

            if _extension_allowed(chosen, extension_filter) is True:
                selected.append(chosen)
            elif logger is not None and logger.isEnabledFor(logging.DEBUG) is True:
                logger.debug(f"distconfig: extension module {name} excluded by filter {extension_filter.value}")

        return selected

    @functools.cached_property
    def _stdlib_resources(self) -> list[Resource]:
        if self.stdlib_path.is_dir() is False:
            raise DistributionError(f"standard library directory does not exist: {self.stdlib_path}")
        return find_python_resources(
            self.stdlib_path,
            extension_suffixes=self.extension_module_suffixes or None,
            skip_dirs=_STDLIB_SKIP_DIRS,
        )

    def source_modules(self) -> list[SourceModule]:
        return [r for r in self._stdlib_resources if isinstance(r, SourceModule)]

    def resource_datas(self) -> list[PackageResource]:
        return [r for r in self._stdlib_resources if isinstance(r, PackageResource)]

    def is_test_package(self, package: str) -> bool:
        if is_stdlib_test_package(package) is True:
            return True
        for test_package in self.stdlib_test_packages:
            if package == test_package or package.startswith(f"{test_package}.") is True:
                return True
        return False

    def as_python_executable_builder(
        self,
        *,
        host_triple: str,
        target_triple: str,
        name: str,
        resources_policy: ResourcesPolicy,
        config: EmbeddedPythonConfig,
        extension_module_filter: ExtensionModuleFilter,
        preferred_extension_module_variants: dict[str, str] | None,
        include_sources: bool,
        include_resources: bool,
        include_test: bool,
        logger: logging.Logger | None = None,
    ) -> PythonExecutable:
        """Create an executable builder seeded with this distribution's stdlib.

        :raises DistributionError: If the target does not match this distribution.
        """

        if target_triple != self.target_triple:
            raise DistributionError(
                f"distribution targets {self.target_triple} but the build targets {target_triple}"
            )

        exe: PythonExecutable = PythonExecutable(
            name=name,
            host_triple=host_triple,
            target_triple=target_triple,
            resources_policy=resources_policy,
            config=config,
            extension_module_filter=extension_module_filter,
            preferred_extension_module_variants=preferred_extension_module_variants,
            include_sources=include_sources,
            include_resources=include_resources,
            include_test=include_test,
        )

        # Distribution extension modules are linked into the executable, not
        # loaded as shared libraries, so they bypass the resources policy.
        exe.resources.extend(
            self.filter_extension_modules(
                extension_module_filter,
                preferred_extension_module_variants,
                logger=logger,
            )
        )

        if include_sources is True:
            for module in self.source_modules():
                package: str = module.name if module.is_package is True else module.name.rpartition(".")[0]
                if include_test is False and self.is_test_package(package) is True:
                    continue
                exe.resources.append(module)

        if include_resources is True:
            for resource in self.resource_datas():
                if include_test is False and self.is_test_package(resource.leaf_package) is True:
                    continue
                exe.resources.append(resource)

        if logger is not None:
            logger.info(f"distconfig: executable {name} seeded with {len(exe.resources)} resources")
        return exe

    def __repr__(self) -> str:
        return f"StandaloneDistribution<{self.target_triple} {self.python_version} at {self.root}>"


def _extension_variant(root: pathlib.Path, name: str, entry: dict) -> ExtensionModule:
    links: list[str] = [link["name"] for link in entry.get("links", []) if "name" in link]
    licenses: list[str] | None = entry.get("licenses")
    shared_lib: str | None = entry.get("shared_lib")
    return ExtensionModule(
        name=name,
        variant=entry.get("variant", "default"),
        required=bool(entry.get("required", False)),
        builtin=bool(entry.get("in_core", False)),
        links=tuple(links),
        licenses=tuple(licenses) if licenses is not None else None,
        shared_library=FileData(path=root / shared_lib) if shared_lib is not None else None,
    )


def _extension_allowed(module: ExtensionModule, extension_filter: ExtensionModuleFilter) -> bool:
    if module.required is True:
        return True

    if extension_filter == ExtensionModuleFilter.ALL:
        return True
    if extension_filter == ExtensionModuleFilter.MINIMAL:
        return module.builtin
    if extension_filter == ExtensionModuleFilter.NO_LIBRARIES:
        return len(module.links) == 0
    if extension_filter == ExtensionModuleFilter.NO_GPL:
        if module.licenses is None:
            return True
        return all("GPL" not in license_id for license_id in module.licenses)

    raise InternalInvariantViolation(f"unhandled extension module filter {extension_filter!r}")


def _sha256_file(path: pathlib.Path) -> str:
    """Hash a file with SHA-256.

    :param path: File to hash.
    :returns: Hex digest.
    """

    h = hashlib.sha256()
    with open(path, "rb") as f:
        while True:
            chunk: bytes = f.read(1024 * 1024)
            if len(chunk) == 0:
                break
            h.update(chunk)
    return h.hexdigest()


def _archive_stem(filename: str) -> str:
    for suffix in _ARCHIVE_SUFFIXES:
        if filename.endswith(suffix) is True:
            return filename[: -len(suffix)]
    raise DistributionError(
        f"unsupported distribution archive {filename!r}; expected one of {', '.join(_ARCHIVE_SUFFIXES)}"
    )


def _verify_sha256(path: pathlib.Path, expected: str) -> str:
    actual: str = _sha256_file(path)
    if actual != expected.lower():
        raise DistributionError(f"SHA-256 of {path} is {actual}; expected {expected}")
    return actual


def _published_sha256(url: str, *, logger: logging.Logger) -> str:
    checksum_url: str = f"{url}.sha256"
    logger.info(f"distconfig: fetching published digest {checksum_url}")
    try:
        resp: requests.Response = requests.get(checksum_url, timeout=60)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise DistributionError(f"unable to fetch {checksum_url}: {e}") from e

    fields: list[str] = resp.text.split()
    if len(fields) == 0:
        raise DistributionError(f"{checksum_url} is empty")
    return fields[0]


def _download(location: UrlDistributionLocation, dest_dir: pathlib.Path, logger: logging.Logger) -> tuple[pathlib.Path, str]:
    """Download an archive into ``dest_dir``, reusing a verified cached copy.

    :returns: ``(archive path, verified digest)``.
    :raises DistributionError: If the download or verification fails.
    """

    filename: str = location.url.rstrip("/").rpartition("/")[2]
    _archive_stem(filename)

    expected: str = location.sha256 if location.sha256 is not None else _published_sha256(location.url, logger=logger)
    archive: pathlib.Path = dest_dir / filename
    if archive.is_file() is True and _sha256_file(archive) == expected.lower():
        logger.info(f"distconfig: distribution cache hit {archive}")
        return archive, expected.lower()

    logger.info(f"distconfig: downloading {location.url}")
    tmp: pathlib.Path = dest_dir / f"{filename}.tmp"
    h = hashlib.sha256()
    t0: float = time.perf_counter()
    try:
        with requests.get(location.url, stream=True, timeout=60) as resp:
            resp.raise_for_status()
            with open(tmp, "wb") as f:
                for chunk in resp.iter_content(chunk_size=1024 * 1024):
                    h.update(chunk)
                    f.write(chunk)
    except (requests.RequestException, OSError) as e:
        tmp.unlink(missing_ok=True)
        raise DistributionError(f"error downloading {location.url}: {e}") from e
    t1: float = time.perf_counter()

    digest: str = h.hexdigest()
    if digest != expected.lower():
        tmp.unlink(missing_ok=True)
        raise DistributionError(f"SHA-256 of {location.url} is {digest}; expected {expected}")

    tmp.replace(archive)
    size: int = archive.stat().st_size
    logger.info(f"distconfig: downloaded {filename} ({size / (1024 * 1024):.1f} MiB) in {t1 - t0:.2f}s")
    return archive, digest


def _extract(archive: pathlib.Path, out_dir: pathlib.Path) -> None:
    if archive.name.endswith(".tar.zst") is True:
        with open(archive, "rb") as fh:
            reader = zstandard.ZstdDecompressor().stream_reader(fh)
            with tarfile.open(fileobj=reader, mode="r|") as tf:
                tf.extractall(out_dir, filter="data")
        return

    with tarfile.open(archive, "r:*") as tf:
        tf.extractall(out_dir, filter="data")


def _ensure_extracted(archive: pathlib.Path, digest: str, dest_dir: pathlib.Path, logger: logging.Logger) -> pathlib.Path:
    """Extract an archive once into ``dest_dir``.

    :returns: Extraction directory (contains ``python/``).
    """

    out_dir: pathlib.Path = dest_dir / f"{_archive_stem(archive.name)}-{digest[:12]}"
    marker: pathlib.Path = out_dir / ".ok"
    if marker.is_file() is True:
        if logger.isEnabledFor(logging.DEBUG) is True:
            logger.debug(f"distconfig: using extracted distribution {out_dir}")
        return out_dir

    logger.info(f"distconfig: extracting {archive.name}")
    t0: float = time.perf_counter()
    out_dir.mkdir(parents=True, exist_ok=True)
    try:
        _extract(archive, out_dir)
    except (tarfile.TarError, zstandard.ZstdError, OSError) as e:
        raise DistributionError(f"error extracting {archive}: {e}") from e
    marker.write_text("ok\n", encoding="utf-8")
    t1: float = time.perf_counter()
    logger.info(f"distconfig: extracted {archive.name} in {t1 - t0:.2f}s")
    return out_dir


def resolve_distribution(
    *,
    flavor: DistributionFlavor,
    location: DistributionLocation,
    dest_dir: pathlib.Path,
    logger: logging.Logger | None = None,
) -> StandaloneDistribution:
    """Obtain, verify and load a distribution.

    :param flavor: Requested flavor.
    :param location: Where the distribution lives.
    :param dest_dir: Directory for downloads and extractions.
    :param logger: Logger for progress output.
    :returns: Loaded distribution.
    :raises DistributionError: If the distribution cannot be obtained.
    """

    if logger is None:
        logger = logging.getLogger("distconfig")

    try:
        dest_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise DistributionError(f"unable to create {dest_dir}: {e}") from e

    if isinstance(location, LocalDistributionLocation):
        path: pathlib.Path = pathlib.Path(location.local_path)
        if path.is_dir() is True:
            # Already extracted; accept either the archive root or its python/ dir.
            python_root: pathlib.Path = path / "python" if (path / "python" / "PYTHON.json").is_file() else path
            logger.info(f"distconfig: using distribution directory {python_root}")
            return StandaloneDistribution.from_directory(python_root, flavor=flavor)
        if path.is_file() is False:
            raise DistributionError(f"distribution archive does not exist: {path}")
        if location.sha256 is None:
            raise DistributionError(f"no SHA-256 given for local distribution {path}")
        digest: str = _verify_sha256(path, location.sha256)
        archive: pathlib.Path = path
    elif isinstance(location, UrlDistributionLocation):
        archive, digest = _download(location, dest_dir, logger)
    else:
        raise InternalInvariantViolation(f"unhandled distribution location {location!r}")

    out_dir: pathlib.Path = _ensure_extracted(archive, digest, dest_dir, logger)
    return StandaloneDistribution.from_directory(out_dir / "python", flavor=flavor)
