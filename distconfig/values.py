"""Argument marshalling for script-visible calls.

Configuration scripts pass untyped values. Each helper here validates one
parameter against a declared shape and returns the typed value, or raises
:class:`~distconfig.errors.ValidationError` naming the parameter together with
the expected and actual shapes. ``None`` is the script's "no value".
"""

from collections.abc import Callable
from typing import TypeVar

from distconfig.environment import ScriptObject
from distconfig.errors import (
    CONFLICTING_PARAMETERS,
    INVALID_PARAMETER_VALUE,
    ValidationError,
)

T = TypeVar("T")


def script_type_name(value: object) -> str:
    """Return the script-facing type name of a value.

    :param value: Script value.
    :returns: Type name as shown in error messages.
    """

    if value is None:
        return "NoneType"
    if isinstance(value, ScriptObject):
        return value.type_name
    # bool is a subclass of int; check it first.
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "list"
    if isinstance(value, dict):
        return "dict"
    return type(value).__name__


def required_str_arg(name: str, value: object) -> str:
    if isinstance(value, str):
        return value
    raise ValidationError(
        f"function expects a string for {name}; got type {script_type_name(value)}"
    )


def optional_str_arg(name: str, value: object) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    raise ValidationError(
        f"function expects an optional string for {name}; got type {script_type_name(value)}"
    )


def required_bool_arg(name: str, value: object) -> bool:
    if isinstance(value, bool):
        return value
    raise ValidationError(
        f"function expects a bool for {name}; got type {script_type_name(value)}"
    )


def required_int_arg(name: str, value: object) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    raise ValidationError(
        f"function expects an int for {name}; got type {script_type_name(value)}"
    )


def required_list_arg(name: str, value_type: str, value: object) -> list[str]:
    """Validate a list whose elements all have the given script type.

    :param name: Parameter name.
    :param value_type: Script type name of every element (e.g. ``string``).
    :param value: Script value.
    :returns: A new list of the elements.
    :raises ValidationError: If the value or any element has the wrong type.
    """

    if not isinstance(value, (list, tuple)):
        raise ValidationError(
            f"function expects a list for {name}; got type {script_type_name(value)}"
        )

    items: list[str] = []
    for item in value:
        item_type: str = script_type_name(item)
        if item_type != value_type:
            raise ValidationError(
                f"list {name} expects values of type {value_type}; got {item_type}"
            )
        items.append(item)
    return items


def optional_list_arg(name: str, value_type: str, value: object) -> list[str] | None:
    if value is None:
        return None
    if not isinstance(value, (list, tuple)):
        raise ValidationError(
            f"function expects an optional list for {name}; got type {script_type_name(value)}"
        )
    return required_list_arg(name, value_type, value)


def optional_dict_arg(
    name: str,
    key_type: str,
    value_type: str,
    value: object,
) -> dict[str, str] | None:
    """Validate an optional dict with typed keys and values.

    :param name: Parameter name.
    :param key_type: Script type name of every key.
    :param value_type: Script type name of every value.
    :param value: Script value.
    :returns: A new dict, or ``None`` when no value was given.
    :raises ValidationError: If the value, a key or a value has the wrong type.
    """

    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValidationError(
            f"function expects an optional dict for {name}; got type {script_type_name(value)}"
        )

    result: dict[str, str] = {}
    for k, v in value.items():
        k_type: str = script_type_name(k)
        if k_type != key_type:
            raise ValidationError(f"dict {name} expects keys of type {key_type}; got {k_type}")
        v_type: str = script_type_name(v)
        if v_type != value_type:
            raise ValidationError(
                f"dict {name} expects values of type {value_type}; got {v_type}"
            )
        result[k] = v
    return result


def optional_type_arg(name: str, type_name: str, value: object) -> object | None:
    """Validate an optional instance of a registered script type.

    :param name: Parameter name.
    :param type_name: Expected script type name.
    :param value: Script value.
    :returns: The unwrapped value, or ``None``.
    :raises ValidationError: If the value is another type.
    """

    if value is None:
        return None
    return required_type_arg(name, (type_name,), value)


def required_type_arg(name: str, type_names: tuple[str, ...], value: object) -> object:
    actual: str = script_type_name(value)
    if isinstance(value, ScriptObject) and actual in type_names:
        return value.value

    expected: str = " or ".join(type_names)
    raise ValidationError(f"{name} must be a {expected}; got type {actual}")


def required_type_list_arg(name: str, type_names: tuple[str, ...], value: object) -> list[object]:
    if not isinstance(value, (list, tuple)):
        raise ValidationError(
            f"function expects a list for {name}; got type {script_type_name(value)}"
        )
    return [required_type_arg(name, type_names, item) for item in value]


def parse_enum_arg(name: str, parser: Callable[[str], T], value: str) -> T:
    """Parse a validated string into a closed enumeration.

    :param name: Parameter name (used only when the parser gives no message).
    :param parser: Callable raising ``ValueError`` for unrecognized literals.
    :param value: The literal to parse.
    :returns: The parsed value.
    :raises ValidationError: If the literal is not recognized.
    """

    try:
        return parser(value)
    except ValueError as e:
        message: str = str(e) or f"invalid value for {name}: {value}"
        raise ValidationError(message, code=INVALID_PARAMETER_VALUE) from e


def exclusive_args(first_name: str, first: object, second_name: str, second: object) -> None:
    """Require exactly one of two optional parameters to be present.

    :raises ValidationError: If both or neither were given.
    """

    if first is not None and second is not None:
        raise ValidationError(
            f"cannot define both {first_name} and {second_name}",
            code=CONFLICTING_PARAMETERS,
        )
    if first is None and second is None:
        raise ValidationError(
            f"must define one of {first_name} or {second_name}",
            code=CONFLICTING_PARAMETERS,
        )
