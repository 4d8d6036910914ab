"""Known default distributions.

Each entry points at a python-build-standalone release artifact. Digests are
not pinned here; they are read from the ``.sha256`` file published next to
each artifact when the distribution is resolved.
"""

from dataclasses import dataclass

from distconfig.distribution import DistributionFlavor, UrlDistributionLocation
from distconfig.errors import InternalInvariantViolation
from distconfig.target import TargetResolutionError, parse_triple

_RELEASE: str = "20240107"
_PYTHON_VERSION: str = "3.11.7"
_BASE_URL: str = f"https://github.com/indygreg/python-build-standalone/releases/download/{_RELEASE}"


@dataclass(frozen=True, slots=True)
class PythonDistributionRecord:
    """A registry entry.

    :ivar target_triple: Triple the distribution runs on.
    :ivar python_version: CPython version.
    :ivar static: Whether libpython and extensions are statically linked.
    :ivar location: Where to fetch it.
    """

    target_triple: str
    python_version: str
    static: bool
    location: UrlDistributionLocation


def _record(triple: str, build: str, *, static: bool) -> PythonDistributionRecord:
    filename: str = f"cpython-{_PYTHON_VERSION}+{_RELEASE}-{triple}-{build}-full.tar.zst"
    return PythonDistributionRecord(
        target_triple=triple,
        python_version=_PYTHON_VERSION,
        static=static,
        location=UrlDistributionLocation(url=f"{_BASE_URL}/{filename}", sha256=None),
    )


PYTHON_DISTRIBUTIONS: tuple[PythonDistributionRecord, ...] = (
    _record("x86_64-unknown-linux-gnu", "pgo+lto", static=False),
    _record("x86_64-unknown-linux-musl", "lto", static=True),
    _record("aarch64-unknown-linux-gnu", "lto", static=False),
    _record("x86_64-apple-darwin", "pgo+lto", static=False),
    _record("aarch64-apple-darwin", "pgo+lto", static=False),
    _record("x86_64-pc-windows-msvc", "shared-pgo", static=False),
    _record("i686-pc-windows-msvc", "shared-pgo", static=False),
)


def _flavor_matches(record: PythonDistributionRecord, flavor: DistributionFlavor) -> bool:
    if flavor == DistributionFlavor.STANDALONE:
        return True
    if flavor == DistributionFlavor.STANDALONE_STATIC:
        return record.static is True
    if flavor == DistributionFlavor.STANDALONE_DYNAMIC:
        return record.static is False
    raise InternalInvariantViolation(f"unhandled distribution flavor {flavor!r}")


def find_distribution(target_triple: str, flavor: DistributionFlavor) -> PythonDistributionRecord | None:
    """Find the default distribution for a target and flavor.

    :param target_triple: Build target triple (normalized before matching).
    :param flavor: Requested flavor; ``standalone`` takes the first match.
    :returns: The matching record, or ``None``.
    :raises TargetResolutionError: If the triple is malformed.
    """

    wanted: str = str(parse_triple(target_triple))
    for record in PYTHON_DISTRIBUTIONS:
        if record.target_triple == wanted and _flavor_matches(record, flavor) is True:
            return record
    return None


def default_distribution_location(flavor: DistributionFlavor, target_triple: str) -> UrlDistributionLocation:
    """Location of the default distribution for a flavor and target.

    :raises ValueError: If no distribution is known.
    """

    try:
        record: PythonDistributionRecord | None = find_distribution(target_triple, flavor)
    except TargetResolutionError as e:
        raise ValueError(str(e)) from e
    if record is None:
        raise ValueError(
            f"could not find default Python distribution for {target_triple} (flavor {flavor.value})"
        )
    return record.location
