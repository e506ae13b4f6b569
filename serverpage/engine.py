"""Execution engines: turn synthesized source into something callable.

The pipeline only relies on :class:`ExecutionEngine` and :class:`CompiledUnit`.
:class:`PythonEngine` is the default implementation and runs the unit with the
interpreter's own ``compile``/``exec``.

Thread safety: ``PythonEngine`` builds a fresh namespace for every invoke and
keeps no mutable state after construction, so one instance may serve
concurrent requests. Engines that wrap non-reentrant resources should be
created with ``EngineConfig(serialize=True)``; :meth:`ExecutionEngine.session`
then holds a lock around each compile/invoke pair.
"""

import builtins
import keyword
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager, nullcontext
from types import CodeType, MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, MutableSequence, Optional

from decouple import config as env_config
from pydantic import BaseModel, ConfigDict, Field

from .errors import CompileError, RuntimeFault, describe_exception
from .synthesis import ENTRY_POINT, OUTPUT_NAME, REQUEST_NAME

logger = logging.getLogger(__name__)

SERIALIZE_DEFAULT = env_config("SERVERPAGE_SERIALIZE", default=False, cast=bool)
EXPOSE_PARAMETERS_DEFAULT = env_config("SERVERPAGE_EXPOSE_PARAMETERS", default=True, cast=bool)

RESERVED_NAMES = frozenset({REQUEST_NAME, OUTPUT_NAME, ENTRY_POINT, "__builtins__", "__name__"})


class Diagnostic(BaseModel):
    """One compile-time problem."""

    model_config = ConfigDict(frozen=True)

    line: int
    column: int
    message: str

    def __str__(self):
        return f"{self.line}:{self.column} - Error: {self.message}"


class EngineConfig(BaseModel):
    """Immutable engine settings; safe to share between engines and threads."""

    model_config = ConfigDict(frozen=True)

    filename: str = Field(default="<serverpage>", description="Name shown in tracebacks")
    expose_parameters: bool = Field(
        default=EXPOSE_PARAMETERS_DEFAULT,
        description="Make identifier-shaped request keys available as global names",
    )
    serialize: bool = Field(
        default=SERIALIZE_DEFAULT,
        description="Serialize compile/invoke pairs with a lock",
    )


class CompiledUnit(ABC):
    """A compiled execution unit with a single entry point."""

    @abstractmethod
    def invoke(self, request: Mapping[str, str], slots: MutableSequence[Optional[str]]) -> None:
        """Run the unit, filling ``slots`` in place.

        Raises :class:`RuntimeFault` if the unit fails.
        """


class ExecutionEngine(ABC):
    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self._lock = threading.Lock() if self.config.serialize else None

    @abstractmethod
    def compile(self, source: str) -> CompiledUnit:
        """Compile ``source`` or raise :class:`CompileError` with diagnostics."""

    @contextmanager
    def session(self) -> Iterator["ExecutionEngine"]:
        """Scope for one compile/invoke pair."""
        with self._lock if self._lock is not None else nullcontext():
            yield self


class PythonCompiledUnit(CompiledUnit):
    def __init__(self, code: CodeType, config: EngineConfig):
        self.code = code
        self.config = config

    def _namespace(self, request: Mapping[str, str]) -> Dict[str, Any]:
        namespace: Dict[str, Any] = {"__builtins__": builtins, "__name__": "serverpage_unit"}
        if self.config.expose_parameters:
            for key, value in request.items():
                if (
                    isinstance(key, str)
                    and key.isidentifier()
                    and not keyword.iskeyword(key)
                    and key not in RESERVED_NAMES
                ):
                    namespace[key] = value
        return namespace

    def invoke(self, request: Mapping[str, str], slots: MutableSequence[Optional[str]]) -> None:
        namespace = self._namespace(request)
        try:
            exec(self.code, namespace)
            namespace[ENTRY_POINT](MappingProxyType(dict(request)), slots)
        except KeyboardInterrupt:
            raise
        except BaseException as e:
            # SystemExit from page code ends the request, not the host
            message = describe_exception(e)
            logger.warning(f"Runtime fault in {self.config.filename}: {message}")
            raise RuntimeFault(message, original_error=e) from e


class PythonEngine(ExecutionEngine):
    """Compile units with the running Python interpreter."""

    def compile(self, source: str) -> PythonCompiledUnit:
        try:
            code = compile(source, self.config.filename, "exec")
        except SyntaxError as e:
            diagnostics = [_syntax_diagnostic(e)]
            logger.warning(f"Compilation failed: {diagnostics[0]}")
            raise CompileError(diagnostics) from e
        except ValueError as e:
            # e.g. null bytes in source on older interpreters
            raise CompileError([Diagnostic(line=0, column=0, message=str(e))]) from e
        except (MemoryError, RecursionError, OverflowError) as e:
            # the parser gives up on very deeply nested or huge sources
            message = describe_exception(e)
            logger.warning(f"Compilation failed: {message}")
            raise CompileError([Diagnostic(line=0, column=0, message=message)]) from e
        return PythonCompiledUnit(code, self.config)


def _syntax_diagnostic(e: SyntaxError) -> Diagnostic:
    return Diagnostic(line=e.lineno or 0, column=e.offset or 0, message=e.msg or str(e))


def new_slots(count: int) -> List[Optional[str]]:
    """Output slots for ``count`` expressions, all initially empty."""
    return [None] * count
