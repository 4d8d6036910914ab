import hashlib
import io
import json
import logging
import pathlib
import tarfile

import pytest
import zstandard

from conftest import TARGET
from distconfig.distribution import (
    DistributionError,
    DistributionFlavor,
    LocalDistributionLocation,
    StandaloneDistribution,
    resolve_distribution,
)
from distconfig.errors import INTERNAL_INVARIANT, InternalInvariantViolation
from distconfig.python_distributions import (
    PYTHON_DISTRIBUTIONS,
    _flavor_matches,
    default_distribution_location,
    find_distribution,
)
from distconfig.resources import ExtensionModuleFilter

LOGGER: logging.Logger = logging.getLogger("distconfig.tests")


def _tar_bytes(dist_dir: pathlib.Path) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tf:
        tf.add(dist_dir, arcname="python")
    return buf.getvalue()


def _write_archive(path: pathlib.Path, data: bytes) -> str:
    path.write_bytes(data)
    return hashlib.sha256(data).hexdigest()


def test_from_directory(dist_dir: pathlib.Path) -> None:
    dist = StandaloneDistribution.from_directory(dist_dir, flavor=DistributionFlavor.STANDALONE)

    assert dist.target_triple == TARGET
    assert dist.target.os == "linux"
    assert dist.python_exe.is_file() is True
    assert dist.stdlib_test_packages == ("test",)
    assert list(dist.extension_modules) == ["_io", "_json", "_ssl", "readline", "_sqlite3"]
    assert [v.variant for v in dist.extension_modules["readline"]] == ["default", "libedit"]
    assert dist.extension_modules["_sqlite3"][0].shared_library is not None


def test_from_directory_without_metadata(tmp_path: pathlib.Path) -> None:
    with pytest.raises(DistributionError, match="PYTHON.json not found"):
        StandaloneDistribution.from_directory(tmp_path, flavor=DistributionFlavor.STANDALONE)


def test_from_directory_missing_field(tmp_path: pathlib.Path) -> None:
    (tmp_path / "PYTHON.json").write_text(json.dumps({"python_exe": "bin/python3"}), encoding="utf-8")

    with pytest.raises(DistributionError, match="missing required field"):
        StandaloneDistribution.from_directory(tmp_path, flavor=DistributionFlavor.STANDALONE)


@pytest.mark.parametrize("build_info", [{"extensions": {"_io": ["bad"]}}, {"extensions": ["_io"]}])
def test_from_directory_malformed_extensions(dist_dir: pathlib.Path, build_info: dict) -> None:
    info_path: pathlib.Path = dist_dir / "PYTHON.json"
    info: dict = json.loads(info_path.read_text(encoding="utf-8"))
    info["build_info"] = build_info
    info_path.write_text(json.dumps(info), encoding="utf-8")

    with pytest.raises(DistributionError, match="malformed build_info.extensions"):
        StandaloneDistribution.from_directory(dist_dir, flavor=DistributionFlavor.STANDALONE)


def test_from_directory_null_build_info(dist_dir: pathlib.Path) -> None:
    info_path: pathlib.Path = dist_dir / "PYTHON.json"
    info: dict = json.loads(info_path.read_text(encoding="utf-8"))
    info["build_info"] = None
    info_path.write_text(json.dumps(info), encoding="utf-8")

    dist = StandaloneDistribution.from_directory(dist_dir, flavor=DistributionFlavor.STANDALONE)

    assert dist.extension_modules == {}


def test_is_test_package(dist_dir: pathlib.Path) -> None:
    dist = StandaloneDistribution.from_directory(dist_dir, flavor=DistributionFlavor.STANDALONE)

    assert dist.is_test_package("test") is True
    assert dist.is_test_package("test.support") is True
    assert dist.is_test_package("lib2to3.tests") is True
    assert dist.is_test_package("testing") is False
    assert dist.is_test_package("email") is False


def test_filter_extension_modules_keeps_required(dist_dir: pathlib.Path) -> None:
    dist = StandaloneDistribution.from_directory(dist_dir, flavor=DistributionFlavor.STANDALONE)

    for extension_filter in ExtensionModuleFilter:
        names: list[str] = [m.name for m in dist.filter_extension_modules(extension_filter, None)]
        assert "_io" in names


def test_filter_extension_modules_unknown_variant(dist_dir: pathlib.Path) -> None:
    dist = StandaloneDistribution.from_directory(dist_dir, flavor=DistributionFlavor.STANDALONE)

    with pytest.raises(DistributionError, match="available: default, libedit"):
        dist.filter_extension_modules(ExtensionModuleFilter.ALL, {"readline": "gnu"})


def test_resolve_local_directory_in_place(dist_dir: pathlib.Path, tmp_path: pathlib.Path) -> None:
    for path in (dist_dir, dist_dir.parent):
        dist = resolve_distribution(
            flavor=DistributionFlavor.STANDALONE,
            location=LocalDistributionLocation(local_path=str(path), sha256=None),
            dest_dir=tmp_path / "cache",
            logger=LOGGER,
        )
        assert dist.root == dist_dir


def test_resolve_local_tar_gz(dist_dir: pathlib.Path, tmp_path: pathlib.Path) -> None:
    archive: pathlib.Path = tmp_path / "cpython-test.tar.gz"
    with tarfile.open(archive, "w:gz") as tf:
        tf.add(dist_dir, arcname="python")
    digest: str = hashlib.sha256(archive.read_bytes()).hexdigest()
    dest: pathlib.Path = tmp_path / "cache"

    dist = resolve_distribution(
        flavor=DistributionFlavor.STANDALONE,
        location=LocalDistributionLocation(local_path=str(archive), sha256=digest),
        dest_dir=dest,
        logger=LOGGER,
    )

    out_dir: pathlib.Path = dest / f"cpython-test-{digest[:12]}"
    assert dist.root == out_dir / "python"
    assert (out_dir / ".ok").is_file() is True
    assert "os" in [m.name for m in dist.source_modules()]


def test_resolve_reuses_extraction(dist_dir: pathlib.Path, tmp_path: pathlib.Path) -> None:
    archive: pathlib.Path = tmp_path / "cpython-test.tar"
    digest: str = _write_archive(archive, _tar_bytes(dist_dir))
    dest: pathlib.Path = tmp_path / "cache"
    location = LocalDistributionLocation(local_path=str(archive), sha256=digest)

    first = resolve_distribution(flavor=DistributionFlavor.STANDALONE, location=location, dest_dir=dest, logger=LOGGER)
    marker_file: pathlib.Path = first.root / "extracted-once"
    marker_file.write_text("", encoding="utf-8")

    second = resolve_distribution(flavor=DistributionFlavor.STANDALONE, location=location, dest_dir=dest, logger=LOGGER)
    assert second.root == first.root
    assert marker_file.is_file() is True


def test_resolve_local_tar_zst(dist_dir: pathlib.Path, tmp_path: pathlib.Path) -> None:
    archive: pathlib.Path = tmp_path / "cpython-test.tar.zst"
    digest: str = _write_archive(archive, zstandard.ZstdCompressor().compress(_tar_bytes(dist_dir)))

    dist = resolve_distribution(
        flavor=DistributionFlavor.STANDALONE_DYNAMIC,
        location=LocalDistributionLocation(local_path=str(archive), sha256=digest.upper()),
        dest_dir=tmp_path / "cache",
        logger=LOGGER,
    )

    assert dist.flavor == DistributionFlavor.STANDALONE_DYNAMIC
    assert dist.target_triple == TARGET


def test_resolve_checksum_mismatch(dist_dir: pathlib.Path, tmp_path: pathlib.Path) -> None:
    archive: pathlib.Path = tmp_path / "cpython-test.tar"
    _write_archive(archive, _tar_bytes(dist_dir))

    with pytest.raises(DistributionError, match="expected"):
        resolve_distribution(
            flavor=DistributionFlavor.STANDALONE,
            location=LocalDistributionLocation(local_path=str(archive), sha256="0" * 64),
            dest_dir=tmp_path / "cache",
            logger=LOGGER,
        )
    assert list((tmp_path / "cache").iterdir()) == []


def test_resolve_local_archive_requires_checksum(dist_dir: pathlib.Path, tmp_path: pathlib.Path) -> None:
    archive: pathlib.Path = tmp_path / "cpython-test.tar"
    _write_archive(archive, _tar_bytes(dist_dir))

    with pytest.raises(DistributionError, match="no SHA-256"):
        resolve_distribution(
            flavor=DistributionFlavor.STANDALONE,
            location=LocalDistributionLocation(local_path=str(archive), sha256=None),
            dest_dir=tmp_path / "cache",
            logger=LOGGER,
        )


def test_resolve_unsupported_archive(tmp_path: pathlib.Path) -> None:
    archive: pathlib.Path = tmp_path / "cpython-test.zip"
    digest: str = _write_archive(archive, b"PK")

    with pytest.raises(DistributionError, match="unsupported distribution archive"):
        resolve_distribution(
            flavor=DistributionFlavor.STANDALONE,
            location=LocalDistributionLocation(local_path=str(archive), sha256=digest),
            dest_dir=tmp_path / "cache",
            logger=LOGGER,
        )


def test_resolve_rejects_members_outside_destination(tmp_path: pathlib.Path) -> None:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tf:
        payload: bytes = b"escaped\n"
        member = tarfile.TarInfo("../escaped.txt")
        member.size = len(payload)
        tf.addfile(member, io.BytesIO(payload))
    archive: pathlib.Path = tmp_path / "cpython-evil.tar"
    digest: str = _write_archive(archive, buf.getvalue())

    with pytest.raises(DistributionError, match="error extracting"):
        resolve_distribution(
            flavor=DistributionFlavor.STANDALONE,
            location=LocalDistributionLocation(local_path=str(archive), sha256=digest),
            dest_dir=tmp_path / "cache",
            logger=LOGGER,
        )
    assert (tmp_path / "escaped.txt").exists() is False
    assert (tmp_path / "cache" / "escaped.txt").exists() is False


def test_registry_lookup() -> None:
    record = find_distribution("x86_64-unknown-linux-gnu", DistributionFlavor.STANDALONE)
    assert record is not None
    assert record.static is False
    assert record.location.url.endswith("x86_64-unknown-linux-gnu-pgo+lto-full.tar.zst")
    assert record.location.sha256 is None

    static = find_distribution("x86_64-unknown-linux-musl", DistributionFlavor.STANDALONE_STATIC)
    assert static is not None
    assert static.static is True
    assert find_distribution("x86_64-unknown-linux-musl", DistributionFlavor.STANDALONE_DYNAMIC) is None


def test_registry_normalizes_triples() -> None:
    record = find_distribution("arm64-apple-darwin", DistributionFlavor.STANDALONE)
    assert record is not None
    assert record.target_triple == "aarch64-apple-darwin"


def test_registry_targets_are_unique() -> None:
    triples: list[str] = [r.target_triple for r in PYTHON_DISTRIBUTIONS]
    assert len(triples) == len(set(triples))


def test_default_distribution_location_unknown() -> None:
    with pytest.raises(ValueError, match="could not find default Python distribution"):
        default_distribution_location(DistributionFlavor.STANDALONE, "s390x-unknown-linux-gnu")

    with pytest.raises(ValueError):
        default_distribution_location(DistributionFlavor.STANDALONE, "not-a-triple")


def test_flavor_matching_rejects_unhandled_flavor() -> None:
    with pytest.raises(InternalInvariantViolation) as ei:
        _flavor_matches(PYTHON_DISTRIBUTIONS[0], "bogus")

    assert ei.value.code == INTERNAL_INVARIANT
    assert "unhandled distribution flavor" in ei.value.message
