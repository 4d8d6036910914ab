"""distconfig.

Binds a standalone Python distribution's packaging operations (pip installs,
resource discovery, executable construction) to build configuration scripts.
"""

__all__: list[str] = ["__version__"]

__version__: str = "0.1.0"
