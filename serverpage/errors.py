"""Exception classes for serverpage."""

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .engine import Diagnostic


class ServerPageError(Exception):
    """Base class for failures raised inside the processing pipeline."""


class CompileError(ServerPageError):
    """The execution engine rejected the synthesized unit.

    Carries every diagnostic the engine reported. Rendering is all-or-nothing,
    so one diagnostic is enough to abort the request.
    """

    def __init__(self, diagnostics: List["Diagnostic"]):
        self.diagnostics = list(diagnostics)
        summary = "; ".join(str(d) for d in self.diagnostics) or "unknown error"
        super().__init__(f"Compilation failed: {summary}")


class RuntimeFault(ServerPageError):
    """The compiled unit raised while it was being invoked."""

    def __init__(self, message: str, original_error: Optional[BaseException] = None):
        self.message = message
        self.original_error = original_error
        super().__init__(message)

    def __repr__(self):
        return f"RuntimeFault({self.message!r})"


class CompositionError(ServerPageError):
    """Slots do not fit the skeleton while composing output.

    Raised when there are fewer slots than placeholders, or when a slot holds
    something other than a string. Synthesis only ever writes strings, so this
    means the slot list was tampered with or serverpage itself has a bug.
    """

    def __init__(self, expected: int, actual: int, message: Optional[str] = None):
        self.expected = expected
        self.actual = actual
        super().__init__(
            message
            or f"Skeleton references {expected} expression slot(s) but only {actual} were supplied"
        )


def innermost_exception(exc: BaseException) -> BaseException:
    """Follow explicit `raise ... from` causes down to the deepest exception."""
    seen = {id(exc)}
    current = exc
    while True:
        nxt = current.__cause__
        if nxt is None or id(nxt) in seen:
            return current
        seen.add(id(nxt))
        current = nxt


def describe_exception(exc: BaseException) -> str:
    """Message for the deepest exception, prefixed with its type name."""
    inner = innermost_exception(exc)
    message = str(inner)
    name = type(inner).__name__
    return f"{name}: {message}" if message else name
