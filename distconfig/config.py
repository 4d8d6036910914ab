"""Embedded interpreter configuration.

``PythonInterpreterConfig(...)`` in a configuration script produces an
:class:`EmbeddedPythonConfig` describing how the interpreter inside a built
executable starts up.
"""

from dataclasses import dataclass
import enum

from distconfig.environment import ConfigEnvironment, Param, ScriptFunction, ScriptType
from distconfig.errors import INVALID_PARAMETER_VALUE, ValidationError
from distconfig.values import (
    optional_list_arg,
    optional_str_arg,
    parse_enum_arg,
    required_bool_arg,
    required_int_arg,
    required_str_arg,
)


class RawAllocator(enum.Enum):
    JEMALLOC = "jemalloc"
    RUST = "rust"
    SYSTEM = "system"

    @classmethod
    def parse(cls, value: str) -> "RawAllocator":
        for member in cls:
            if member.value == value:
                return member
        raise ValueError(f"invalid raw_allocator value: {value}")


_RUN_MODE_PREFIXES: tuple[str, ...] = ("module:", "eval:", "file:")


def parse_run_mode(value: str) -> str:
    """Validate a run mode: ``repl``, ``noop``, ``module:<name>``, ``eval:<code>`` or ``file:<path>``."""

    if value in ("repl", "noop"):
        return value
    for prefix in _RUN_MODE_PREFIXES:
        if value.startswith(prefix) is True and len(value) > len(prefix):
            return value
    raise ValueError(f"invalid run_mode value: {value}")


@dataclass(frozen=True, slots=True)
class EmbeddedPythonConfig:
    """Interpreter settings embedded in an executable.

    Fields mirror the interpreter's own command line switches and
    ``PyConfig`` members.
    """

    bytes_warning: int = 0
    ignore_environment: bool = True
    inspect: bool = False
    interactive: bool = False
    isolated: bool = False
    optimize_level: int = 0
    quiet: bool = False
    raw_allocator: RawAllocator = RawAllocator.SYSTEM
    run_mode: str = "repl"
    stdio_encoding: str | None = None
    sys_paths: tuple[str, ...] = ()
    unbuffered_stdio: bool = False
    user_site_directory: bool = False
    verbose: int = 0
    write_bytecode: bool = False


_PARAMS: tuple[Param, ...] = (
    Param("bytes_warning", 0),
    Param("ignore_environment", True),
    Param("inspect", False),
    Param("interactive", False),
    Param("isolated", False),
    Param("optimize_level", 0),
    Param("quiet", False),
    Param("raw_allocator", "system"),
    Param("run_mode", "repl"),
    Param("stdio_encoding", None),
    Param("sys_paths", None),
    Param("unbuffered_stdio", False),
    Param("user_site_directory", False),
    Param("verbose", 0),
    Param("write_bytecode", False),
)


def python_interpreter_config(
    env: ConfigEnvironment,
    bytes_warning: object,
    ignore_environment: object,
    inspect: object,
    interactive: object,
    isolated: object,
    optimize_level: object,
    quiet: object,
    raw_allocator: object,
    run_mode: object,
    stdio_encoding: object,
    sys_paths: object,
    unbuffered_stdio: object,
    user_site_directory: object,
    verbose: object,
    write_bytecode: object,
) -> EmbeddedPythonConfig:
    """PythonInterpreterConfig(...)"""

    bytes_warning_value: int = required_int_arg("bytes_warning", bytes_warning)
    optimize: int = required_int_arg("optimize_level", optimize_level)
    if optimize not in (0, 1, 2):
        raise ValidationError(
            f"optimize_level must be 0, 1 or 2; got {optimize}",
            code=INVALID_PARAMETER_VALUE,
        )
    verbose_value: int = required_int_arg("verbose", verbose)

    allocator: RawAllocator = parse_enum_arg(
        "raw_allocator",
        RawAllocator.parse,
        required_str_arg("raw_allocator", raw_allocator),
    )
    mode: str = parse_enum_arg("run_mode", parse_run_mode, required_str_arg("run_mode", run_mode))
    paths: list[str] | None = optional_list_arg("sys_paths", "string", sys_paths)

    return EmbeddedPythonConfig(
        bytes_warning=bytes_warning_value,
        ignore_environment=required_bool_arg("ignore_environment", ignore_environment),
        inspect=required_bool_arg("inspect", inspect),
        interactive=required_bool_arg("interactive", interactive),
        isolated=required_bool_arg("isolated", isolated),
        optimize_level=optimize,
        quiet=required_bool_arg("quiet", quiet),
        raw_allocator=allocator,
        run_mode=mode,
        stdio_encoding=optional_str_arg("stdio_encoding", stdio_encoding),
        sys_paths=tuple(paths) if paths is not None else (),
        unbuffered_stdio=required_bool_arg("unbuffered_stdio", unbuffered_stdio),
        user_site_directory=required_bool_arg("user_site_directory", user_site_directory),
        verbose=verbose_value,
        write_bytecode=required_bool_arg("write_bytecode", write_bytecode),
    )


def register_config_module(env: ConfigEnvironment) -> None:
    env.register_type(
        ScriptType(
            name="PythonInterpreterConfig",
            cls=EmbeddedPythonConfig,
            attributes=tuple(p.name for p in _PARAMS),
        )
    )
    env.register_function(
        ScriptFunction(
            name="PythonInterpreterConfig",
            params=_PARAMS,
            handler=python_interpreter_config,
        )
    )
