"""Bytecode compilation with a distribution's interpreter.

Bytecode must be produced by the interpreter it will run on, which is usually
not the one running this package. :class:`BytecodeCompiler` starts that
interpreter once and feeds it compile requests over stdin/stdout, so the
start-up cost is paid a single time per compiler.

Wire format, all lengths as ASCII decimal lines:

- request: ``compile``, filename length, source length, optimization level,
  mode, then the filename and source bytes.
- response: ``ok`` or ``error``, payload length, then the payload (compiled
  bytes or a UTF-8 error message).
"""

import enum
import logging
import pathlib
import subprocess
import weakref


class BytecodeCompileError(RuntimeError):
    """Raised when compilation fails or the compiler process dies."""


class CompileMode(enum.Enum):
    """Output format of a compile request."""

    BYTECODE = "bytecode"
    PYC_CHECKED_HASH = "pyc-checked-hash"
    PYC_UNCHECKED_HASH = "pyc-unchecked-hash"

    @classmethod
    def parse(cls, value: str) -> "CompileMode":
        for member in cls:
            if member.value == value:
                return member
        raise ValueError(f"{value} is not a valid bytecode compile mode")


class BytecodeOptimizationLevel(enum.IntEnum):
    ZERO = 0
    ONE = 1
    TWO = 2


_COMPILER_SCRIPT: str = r"""
import importlib._bootstrap_external
import importlib.util
import marshal
import sys

stdin = sys.stdin.buffer
stdout = sys.stdout.buffer

while True:
    command = stdin.readline().rstrip(b"\n")
    if command in (b"", b"exit"):
        break
    if command != b"compile":
        stdout.write(b"error\n")
        message = b"unknown command " + command
        stdout.write(str(len(message)).encode("ascii") + b"\n" + message)
        stdout.flush()
        continue

    name_len = int(stdin.readline())
    source_len = int(stdin.readline())
    optimize = int(stdin.readline())
    mode = stdin.readline().rstrip(b"\n").decode("ascii")
    name = stdin.read(name_len).decode("utf-8")
    source = stdin.read(source_len)

    try:
        code = compile(source, name, "exec", dont_inherit=True, optimize=optimize)
        if mode == "bytecode":
            payload = marshal.dumps(code)
        elif mode in ("pyc-checked-hash", "pyc-unchecked-hash"):
            payload = bytes(
                importlib._bootstrap_external._code_to_hash_pyc(
                    code,
                    importlib.util.source_hash(source),
                    mode == "pyc-checked-hash",
                )
            )
        else:
            raise ValueError("unknown compile mode " + mode)
        status = b"ok\n"
    except Exception as e:
        payload = (type(e).__name__ + ": " + str(e)).encode("utf-8")
        status = b"error\n"

    stdout.write(status)
    stdout.write(str(len(payload)).encode("ascii") + b"\n")
    stdout.write(payload)
    stdout.flush()
"""


def _shutdown(proc: subprocess.Popen) -> None:
    if proc.poll() is not None:
        return
    try:
        if proc.stdin is not None:
            proc.stdin.write(b"exit\n")
            proc.stdin.close()
        proc.wait(timeout=5)
    except (OSError, subprocess.TimeoutExpired):
        proc.kill()
        proc.wait()


class BytecodeCompiler:
    """A long-lived interpreter process that compiles Python source.

    Instances are not thread safe; callers serialize access.
    """

    def __init__(self, python_exe: pathlib.Path, *, logger: logging.Logger | None = None) -> None:
        if logger is None:
            logger = logging.getLogger("distconfig")

        cmd: list[str] = [str(python_exe), "-I", "-W", "ignore", "-c", _COMPILER_SCRIPT]
        if logger.isEnabledFor(logging.DEBUG) is True:
            logger.debug(f"distconfig: starting bytecode compiler: {python_exe}")

        try:
            self._proc: subprocess.Popen = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            raise BytecodeCompileError(f"unable to start bytecode compiler {python_exe}: {e}") from e

        self.python_exe: pathlib.Path = python_exe
        self._finalizer = weakref.finalize(self, _shutdown, self._proc)

    def compile(
        self,
        source: bytes,
        filename: str,
        optimize: BytecodeOptimizationLevel,
        mode: CompileMode,
    ) -> bytes:
        """Compile source with the distribution's interpreter.

        :param source: Python source bytes.
        :param filename: Name recorded in the code object.
        :param optimize: Optimization level.
        :param mode: Output format.
        :returns: Marshalled code or ``.pyc`` content, depending on ``mode``.
        :raises BytecodeCompileError: If compilation fails.
        """

        stdin = self._proc.stdin
        stdout = self._proc.stdout
        if stdin is None or stdout is None or self._proc.poll() is not None:
            raise BytecodeCompileError("bytecode compiler process is not running")

        name_bytes: bytes = filename.encode("utf-8")
        try:
            stdin.write(b"compile\n")
            stdin.write(f"{len(name_bytes)}\n".encode("ascii"))
            stdin.write(f"{len(source)}\n".encode("ascii"))
            stdin.write(f"{int(optimize)}\n".encode("ascii"))
            stdin.write(f"{mode.value}\n".encode("ascii"))
            stdin.write(name_bytes)
            stdin.write(source)
            stdin.flush()

            status: bytes = stdout.readline()
            length_line: bytes = stdout.readline()
        except OSError as e:
            raise BytecodeCompileError(f"lost connection to bytecode compiler: {e}") from e

        if len(status) == 0 or len(length_line) == 0:
            raise BytecodeCompileError(
                f"bytecode compiler process exited unexpectedly (exit={self._proc.poll()})"
            )

        payload: bytes = stdout.read(int(length_line))
        if status == b"ok\n":
            return payload
        raise BytecodeCompileError(
            f"error compiling {filename}: {payload.decode('utf-8', errors='replace')}"
        )

    def close(self) -> None:
        self._finalizer()
