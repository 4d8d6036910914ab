"""Script environment.

A :class:`ConfigEnvironment` is the symbol table a configuration script runs
against. Modules register their constructors as :class:`ScriptFunction`
objects and their value types as :class:`ScriptType` objects; the environment
binds call arguments, wraps returned values as :class:`ScriptObject` and keeps
everything else (builtins, ambient symbols) out of the script's reach.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
import logging
import pathlib

from distconfig.errors import (
    EXTRANEOUS_PARAMETER,
    MISSING_PARAMETER,
    ConfigError,
    ScriptError,
    ValidationError,
)


class _Required:
    def __repr__(self) -> str:
        return "<required>"


REQUIRED: _Required = _Required()


@dataclass(frozen=True, slots=True)
class Param:
    """A named parameter of a script-visible call.

    :ivar name: Parameter name as written in scripts.
    :ivar default: Default value, or :data:`REQUIRED`.
    """

    name: str
    default: object = REQUIRED


@dataclass(frozen=True, slots=True)
class ScriptFunction:
    """A script-visible callable.

    Functions are invoked as ``handler(env, *values)``; methods as
    ``handler(this, env, *values)``. ``values`` follow ``params`` order.
    """

    name: str
    params: tuple[Param, ...]
    handler: Callable[..., object]


@dataclass(frozen=True, slots=True)
class ScriptType:
    """A value type exposed to scripts.

    :ivar name: Script type name.
    :ivar cls: Python class of the wrapped values.
    :ivar methods: Callable methods.
    :ivar attributes: Read-only attributes.
    """

    name: str
    cls: type
    methods: tuple[ScriptFunction, ...] = ()
    attributes: tuple[str, ...] = ()

    def method(self, name: str) -> ScriptFunction | None:
        for m in self.methods:
            if m.name == name:
                return m
        return None


@dataclass(slots=True)
class EnvironmentContext:
    """Ambient state shared by every call made from one script evaluation.

    :ivar logger: Logger for progress output.
    :ivar cwd: Directory relative script paths are resolved against.
    :ivar build_host_triple: Triple of the machine running the build.
    :ivar build_target_triple: Triple being built for.
    :ivar python_distributions_path: Where distributions are downloaded and extracted.
    :ivar verbose: Forward verbose flags to packaging tools.
    :ivar config_path: Path of the script being evaluated, if any.
    """

    logger: logging.Logger
    cwd: pathlib.Path
    build_host_triple: str
    build_target_triple: str
    python_distributions_path: pathlib.Path
    verbose: bool = False
    config_path: pathlib.Path | None = None


class ScriptObject:
    """A registered value as seen by a script."""

    __slots__ = ("env", "script_type", "value")

    def __init__(self, env: "ConfigEnvironment", script_type: ScriptType, value: object) -> None:
        self.env: ConfigEnvironment = env
        self.script_type: ScriptType = script_type
        self.value: object = value

    @property
    def type_name(self) -> str:
        return self.script_type.name

    def __getattr__(self, name: str) -> object:
        if name in ScriptObject.__slots__:
            raise AttributeError(name)

        method: ScriptFunction | None = self.script_type.method(name)
        if method is not None:
            return self.env.bound_method(method, self)

        if name in self.script_type.attributes:
            return self.env.to_script_value(getattr(self.value, name))

        raise AttributeError(f"{self.script_type.name} has no attribute {name!r}")

    def __repr__(self) -> str:
        return repr(self.value)


def _script_print(env: "ConfigEnvironment") -> Callable[..., None]:
    def script_print(*args: object) -> None:
        env.context.logger.info(" ".join(str(a) for a in args))

    return script_print


_SAFE_BUILTINS: dict[str, object] = {
    "bool": bool,
    "dict": dict,
    "enumerate": enumerate,
    "int": int,
    "len": len,
    "list": list,
    "range": range,
    "sorted": sorted,
    "str": str,
    "zip": zip,
}


@dataclass
class ConfigEnvironment:
    """Symbol table plus registered types for one script evaluation."""

    context: EnvironmentContext
    symbols: dict[str, object] = field(default_factory=dict)
    functions: dict[str, ScriptFunction] = field(default_factory=dict)
    types_by_name: dict[str, ScriptType] = field(default_factory=dict)
    types_by_cls: dict[type, ScriptType] = field(default_factory=dict)

    def __post_init__(self) -> None:
        builtins: dict[str, object] = dict(_SAFE_BUILTINS)
        builtins["print"] = _script_print(self)
        self.symbols["__builtins__"] = builtins
        self.set_symbol("BUILD_HOST_TRIPLE", self.context.build_host_triple)
        self.set_symbol("BUILD_TARGET_TRIPLE", self.context.build_target_triple)
        self.set_symbol("CWD", str(self.context.cwd))
        self.set_symbol(
            "CONFIG_PATH",
            str(self.context.config_path) if self.context.config_path is not None else None,
        )

    def set_symbol(self, name: str, value: object) -> None:
        self.symbols[name] = value

    def register_function(self, function: ScriptFunction) -> None:
        self.functions[function.name] = function

        def call(*args: object, **kwargs: object) -> object:
            return self.invoke(function, None, args, kwargs, label=f"{function.name}()")

        call.__name__ = function.name
        self.symbols[function.name] = call

    def register_type(self, script_type: ScriptType) -> None:
        self.types_by_name[script_type.name] = script_type
        self.types_by_cls[script_type.cls] = script_type

    def bound_method(self, method: ScriptFunction, this: ScriptObject) -> Callable[..., object]:
        def call(*args: object, **kwargs: object) -> object:
            return self.invoke(method, this.value, args, kwargs, label=f"{method.name}()")

        call.__name__ = method.name
        return call

    def call(self, name: str, *args: object, **kwargs: object) -> object:
        """Call a registered function the way a script would.

        :param name: Registered function name.
        :returns: The script value returned by the function.
        :raises ScriptError: If no such function is registered.
        """

        function: ScriptFunction | None = self.functions.get(name)
        if function is None:
            raise ScriptError(f"{name} is not defined", label=f"{name}()")
        return self.invoke(function, None, args, kwargs, label=f"{name}()")

    def invoke(
        self,
        function: ScriptFunction,
        this: object | None,
        args: tuple[object, ...],
        kwargs: dict[str, object],
        *,
        label: str,
    ) -> object:
        values: list[object] = bind_arguments(function, args, kwargs, label=label)
        try:
            if this is None:
                result: object = function.handler(self, *values)
            else:
                result = function.handler(this, self, *values)
        except ConfigError as e:
            raise e.with_label(label)
        return self.to_script_value(result)

    def to_script_value(self, value: object) -> object:
        if isinstance(value, ScriptObject):
            return value
        script_type: ScriptType | None = self.types_by_cls.get(type(value))
        if script_type is not None:
            return ScriptObject(self, script_type, value)
        if isinstance(value, list):
            return [self.to_script_value(v) for v in value]
        return value

    def eval(self, expression: str) -> object:
        """Evaluate a single expression against the symbol table.

        :param expression: Expression source.
        :returns: Resulting script value.
        """

        return self.exec_source(expression, filename="<expr>", mode="eval")

    def exec_file(self, path: pathlib.Path) -> None:
        try:
            source: str = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ScriptError(f"unable to read {path}: {e}", label=str(path)) from e
        self.exec_source(source, filename=str(path), mode="exec")

    def exec_source(self, source: str, *, filename: str, mode: str) -> object:
        """Compile and run script source against the symbol table.

        :param source: Script source text.
        :param filename: Name used in tracebacks and error labels.
        :param mode: ``exec`` or ``eval``.
        :returns: The value of an ``eval`` expression, else ``None``.
        :raises ConfigError: For any failure raised while evaluating.
        """

        try:
            code = compile(source, filename, mode, dont_inherit=True)
            if mode == "eval":
                return eval(code, self.symbols)
            exec(code, self.symbols)
            return None
        except ConfigError:
            raise
        except Exception as e:
            raise ScriptError(f"{type(e).__name__}: {e}", label=filename) from e


def bind_arguments(
    function: ScriptFunction,
    args: tuple[object, ...],
    kwargs: dict[str, object],
    *,
    label: str,
) -> list[object]:
    """Match positional and keyword arguments to declared parameters.

    :returns: One value per parameter, defaults filled in.
    :raises ValidationError: On missing, duplicate or unknown parameters.
    """

    if len(args) > len(function.params):
        raise ValidationError(
            f"extraneous positional parameter in call to {function.name}",
            label=label,
            code=EXTRANEOUS_PARAMETER,
        )

    supplied: dict[str, object] = {}
    for param, value in zip(function.params, args):
        supplied[param.name] = value

    names: set[str] = {p.name for p in function.params}
    for name, value in kwargs.items():
        if name not in names:
            raise ValidationError(
                f"extraneous parameter {name} in call to {function.name}",
                label=label,
                code=EXTRANEOUS_PARAMETER,
            )
        if name in supplied:
            raise ValidationError(
                f"parameter {name} given more than once in call to {function.name}",
                label=label,
                code=EXTRANEOUS_PARAMETER,
            )
        supplied[name] = value

    values: list[object] = []
    for param in function.params:
        if param.name in supplied:
            values.append(supplied[param.name])
        elif param.default is REQUIRED:
            raise ValidationError(
                f"Missing parameter {param.name} for call to {function.name}",
                label=label,
                code=MISSING_PARAMETER,
            )
        else:
            values.append(param.default)
    return values
