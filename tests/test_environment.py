import logging
import pathlib

import pytest

from conftest import TARGET
from distconfig.environment import ConfigEnvironment, EnvironmentContext, Param, ScriptFunction
from distconfig.errors import EXTRANEOUS_PARAMETER, MISSING_PARAMETER, ScriptError, ValidationError
from distconfig.loader import evaluate_config_file


def _echo(env: ConfigEnvironment, first: object, second: object) -> object:
    return [first, second]


@pytest.fixture
def echo_env(env: ConfigEnvironment) -> ConfigEnvironment:
    env.register_function(ScriptFunction(name="echo", params=(Param("first"), Param("second", "dflt")), handler=_echo))
    return env


def test_binds_positional_and_keyword_arguments(echo_env: ConfigEnvironment) -> None:
    assert echo_env.eval("echo(1)") == [1, "dflt"]
    assert echo_env.eval("echo(1, 2)") == [1, 2]
    assert echo_env.eval("echo(second=2, first=1)") == [1, 2]


@pytest.mark.parametrize(
    ("call", "code", "message"),
    [
        ("echo()", MISSING_PARAMETER, "Missing parameter first for call to echo"),
        ("echo(1, 2, 3)", EXTRANEOUS_PARAMETER, "extraneous positional parameter in call to echo"),
        ("echo(1, third=3)", EXTRANEOUS_PARAMETER, "extraneous parameter third in call to echo"),
        ("echo(1, first=1)", EXTRANEOUS_PARAMETER, "parameter first given more than once in call to echo"),
    ],
)
def test_binding_errors(echo_env: ConfigEnvironment, call: str, code: str, message: str) -> None:
    with pytest.raises(ValidationError) as ei:
        echo_env.eval(call)

    assert ei.value.code == code
    assert ei.value.message == message
    assert ei.value.label == "echo()"


def test_ambient_symbols(env: ConfigEnvironment, context: EnvironmentContext) -> None:
    assert env.eval("BUILD_TARGET_TRIPLE") == TARGET
    assert env.eval("BUILD_HOST_TRIPLE") == TARGET
    assert env.eval("CWD") == str(context.cwd)
    assert env.eval("CONFIG_PATH") is None


def test_script_cannot_reach_unlisted_builtins(env: ConfigEnvironment) -> None:
    with pytest.raises(ScriptError) as ei:
        env.eval("open('/etc/passwd')")

    assert ei.value.message.startswith("NameError:")
    assert ei.value.label == "<expr>"


def test_script_syntax_error(env: ConfigEnvironment) -> None:
    with pytest.raises(ScriptError, match="SyntaxError"):
        env.exec_source("x = (", filename="broken.py", mode="exec")


def test_print_goes_to_logger(env: ConfigEnvironment, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="distconfig.tests"):
        env.exec_source("print('hello', 42)", filename="<test>", mode="exec")

    assert "hello 42" in caplog.messages


def test_script_object_attributes(env: ConfigEnvironment) -> None:
    config = env.eval("PythonInterpreterConfig(verbose=2)")

    assert config.type_name == "PythonInterpreterConfig"
    assert config.verbose == 2
    with pytest.raises(AttributeError):
        config.no_such_attribute


def test_unknown_method_is_a_script_error(env: ConfigEnvironment) -> None:
    with pytest.raises(ScriptError, match="AttributeError"):
        env.exec_source("PythonInterpreterConfig().frobnicate()", filename="<test>", mode="exec")


def test_call_unknown_function(env: ConfigEnvironment) -> None:
    with pytest.raises(ScriptError, match="nope is not defined"):
        env.call("nope")


def test_evaluate_config_file(context: EnvironmentContext, tmp_path: pathlib.Path) -> None:
    path: pathlib.Path = tmp_path / "build.py"
    path.write_text(
        "config = PythonInterpreterConfig(run_mode='eval:print(1)')\n"
        "where = CONFIG_PATH\n",
        encoding="utf-8",
    )

    env: ConfigEnvironment = evaluate_config_file(path, context)

    assert env.symbols["where"] == str(path)
    assert env.symbols["config"].run_mode == "eval:print(1)"


def test_evaluate_missing_config_file(context: EnvironmentContext, tmp_path: pathlib.Path) -> None:
    with pytest.raises(ScriptError, match="unable to read"):
        evaluate_config_file(tmp_path / "missing.py", context)
