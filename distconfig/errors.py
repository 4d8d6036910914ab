"""Script-visible error taxonomy.

Every failure that reaches a configuration script is a :class:`ConfigError`
carrying a stable machine-readable code, a human message and a label naming
the operation that failed. Calling code distinguishes failures by class and
code:

- :class:`ValidationError`: a script argument had the wrong shape or value.
  Raised before any I/O.
- :class:`ResolutionError`: the distribution could not be obtained.
- :class:`OperationError`: a packaging step (pip, setup.py, scanning, ...)
  failed. Each operation has its own code.
- :class:`InternalInvariantViolation`: a value passed validation but was not
  understood downstream.
"""

from dataclasses import dataclass


INCORRECT_PARAMETER_TYPE: str = "INCORRECT_PARAMETER_TYPE"
INVALID_PARAMETER_VALUE: str = "INVALID_PARAMETER_VALUE"
CONFLICTING_PARAMETERS: str = "CONFLICTING_PARAMETERS"
MISSING_PARAMETER: str = "MISSING_PARAMETER"
EXTRANEOUS_PARAMETER: str = "EXTRANEOUS_PARAMETER"

RESOLVE_DISTRIBUTION: str = "RESOLVE_DISTRIBUTION"
UNKNOWN_DISTRIBUTION: str = "UNKNOWN_DISTRIBUTION"

PYTHON_DISTRIBUTION: str = "PYTHON_DISTRIBUTION"
PIP_INSTALL_ERROR: str = "PIP_INSTALL_ERROR"
PACKAGE_ROOT_ERROR: str = "PACKAGE_ROOT_ERROR"
VIRTUALENV_ERROR: str = "VIRTUALENV_ERROR"
SETUP_PY_ERROR: str = "SETUP_PY_ERROR"
EXECUTABLE_BUILD_ERROR: str = "EXECUTABLE_BUILD_ERROR"
BYTECODE_COMPILE_ERROR: str = "BYTECODE_COMPILE_ERROR"

INTERNAL_INVARIANT: str = "INTERNAL_INVARIANT"
SCRIPT_EVALUATION: str = "SCRIPT_EVALUATION"


@dataclass(frozen=True, slots=True)
class ErrorRecord:
    """Structured form of a :class:`ConfigError`.

    :ivar code: Stable machine-readable code.
    :ivar message: Human readable message.
    :ivar label: Name of the failing operation.
    """

    code: str
    message: str
    label: str | None


class ConfigError(Exception):
    """Base class for errors surfaced to configuration scripts."""

    default_code: str = SCRIPT_EVALUATION

    def __init__(self, message: str, *, label: str | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.message: str = message
        self.label: str | None = label
        self.code: str = code if code is not None else self.default_code

    def with_label(self, label: str) -> "ConfigError":
        """Fill in the label if none was set when the error was raised.

        :param label: Operation label.
        :returns: This error.
        """

        if self.label is None:
            self.label = label
        return self

    def to_record(self) -> ErrorRecord:
        return ErrorRecord(code=self.code, message=self.message, label=self.label)

    def __str__(self) -> str:
        return self.message


class ValidationError(ConfigError):
    """Raised when a script argument has a bad shape or value."""

    default_code = INCORRECT_PARAMETER_TYPE


class ResolutionError(ConfigError):
    """Raised when the distribution could not be obtained or verified."""

    default_code = RESOLVE_DISTRIBUTION


class OperationError(ConfigError):
    """Raised when a packaging operation fails."""

    default_code = PYTHON_DISTRIBUTION


class InternalInvariantViolation(ConfigError):
    """Raised when a validated value is not recognized downstream."""

    default_code = INTERNAL_INVARIANT


class ScriptError(ConfigError):
    """Raised when a configuration script fails for reasons of its own."""

    default_code = SCRIPT_EVALUATION
