"""Target triple helpers.

Distributions are keyed by Rust-like target triples (e.g.
``x86_64-unknown-linux-gnu``). This module detects the triple of the running
host and normalizes user-supplied triples so registry lookups are exact.
"""

from dataclasses import dataclass
import platform
import sys
import sysconfig


class TargetResolutionError(ValueError):
    """Raised when a target triple cannot be recognized."""


@dataclass(frozen=True, slots=True)
class TargetTriple:
    """A parsed target triple.

    :ivar arch: Architecture (e.g. ``x86_64``).
    :ivar vendor: Vendor (e.g. ``unknown``, ``apple``, ``pc``).
    :ivar os: Operating system (``linux``, ``darwin``, ``windows``).
    :ivar env: Environment/ABI (e.g. ``gnu``, ``musl``, ``msvc``), possibly empty.
    """

    arch: str
    vendor: str
    os: str
    env: str

    @property
    def is_windows(self) -> bool:
        return self.os == "windows"

    def __str__(self) -> str:
        if len(self.env) > 0:
            return f"{self.arch}-{self.vendor}-{self.os}-{self.env}"
        return f"{self.arch}-{self.vendor}-{self.os}"


_ARCH_ALIASES: dict[str, str] = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "aarch64": "aarch64",
    "arm64": "aarch64",
    "armv7": "armv7",
    "armv7l": "armv7",
    "i686": "i686",
    "x86": "i686",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
}


def parse_triple(triple: str) -> TargetTriple:
    """Parse and normalize a target triple.

    :param triple: Triple such as ``x86_64-unknown-linux-gnu``.
    :returns: Parsed triple with a normalized architecture.
    :raises TargetResolutionError: If the triple is not recognized.
    """

    parts: list[str] = triple.split("-")
    if len(parts) < 3:
        raise TargetResolutionError(
            f"Unrecognized target triple {triple!r}; expected arch-vendor-os[-env]."
        )

    arch: str | None = _ARCH_ALIASES.get(parts[0])
    if arch is None:
        raise TargetResolutionError(f"Unsupported arch in target triple: {parts[0]!r}")

    os_part: str = parts[2]
    if os_part not in ("linux", "darwin", "windows"):
        raise TargetResolutionError(
            f"Unrecognized OS in target triple {triple!r} (os={os_part!r})."
        )

    env_part: str = parts[3] if len(parts) >= 4 else ""
    return TargetTriple(arch=arch, vendor=parts[1], os=os_part, env=env_part)


def host_triple() -> str:
    """Detect the target triple of the running interpreter.

    :returns: Host triple.
    :raises TargetResolutionError: If the host platform is not supported.
    """

    machine: str = platform.machine().lower()
    arch: str | None = _ARCH_ALIASES.get(machine)
    if arch is None:
        raise TargetResolutionError(f"Unsupported host architecture: {machine!r}")

    if sys.platform.startswith("linux") is True:
        env: str = "musl" if _is_musl() is True else "gnu"
        return str(TargetTriple(arch=arch, vendor="unknown", os="linux", env=env))
    if sys.platform == "darwin":
        return str(TargetTriple(arch=arch, vendor="apple", os="darwin", env=""))
    if sys.platform == "win32":
        return str(TargetTriple(arch=arch, vendor="pc", os="windows", env="msvc"))

    raise TargetResolutionError(f"Unsupported host platform: {sys.platform!r}")


def _is_musl() -> bool:
    """Check whether the running interpreter links against musl libc."""

    # sysconfig reports e.g. "x86_64-linux-musl" on musl-based builds.
    multiarch: object = sysconfig.get_config_var("MULTIARCH")
    if isinstance(multiarch, str) and multiarch.endswith("musl") is True:
        return True
    libc_name, _ = platform.libc_ver()
    return libc_name == "musl"
