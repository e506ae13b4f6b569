"""Compose rendered output and HTML error pages."""

import logging
from typing import Optional, Sequence

from jinja2 import Environment, StrictUndefined

from .engine import Diagnostic
from .errors import CompositionError
from .synthesis import Skeleton

logger = logging.getLogger(__name__)

_env = Environment(autoescape=True, undefined=StrictUndefined)

COMPILE_ERROR_PAGE = _env.from_string(
    "<html><body>"
    "<h1>Script Compilation Errors</h1>"
    "<p>The following errors occurred processing the requested resource</p>"
    "<ul>"
    "{% for d in diagnostics %}<li>{{ d.line }}:{{ d.column }} - Error: {{ d.message }}</li>{% endfor %}"
    "</ul>"
    "</body></html>"
)

RUNTIME_ERROR_PAGE = _env.from_string(
    "<html><body>"
    "<h1>Runtime Error</h1>"
    "<p>The following runtime error occurred:</p>"
    "<p>{{ message }}</p>"
    "</body></html>"
)

INTERNAL_ERROR_PAGE = _env.from_string(
    "<html><body>"
    "<h1>Internal Error</h1>"
    "<p>The page could not be composed:</p>"
    "<p>{{ message }}</p>"
    "</body></html>"
)


def compose(skeleton: Skeleton, slots: Sequence[Optional[str]]) -> str:
    """Insert slot values into the skeleton by position.

    Empty slots (expressions that never ran) become empty strings. Any other
    non-string value is a :class:`CompositionError`.
    """
    needed = skeleton.expression_count
    if len(slots) < needed:
        raise CompositionError(expected=needed, actual=len(slots))

    out = [skeleton.parts[0]]
    for index, part in enumerate(skeleton.parts[1:]):
        value = slots[index]
        if value is not None and not isinstance(value, str):
            raise CompositionError(
                expected=needed,
                actual=len(slots),
                message=f"Slot {index} holds {type(value).__name__}, expected str",
            )
        out.append("" if value is None else value)
        out.append(part)
    return "".join(out)


def compile_error_page(diagnostics: Sequence[Diagnostic]) -> str:
    return COMPILE_ERROR_PAGE.render(diagnostics=diagnostics)


def runtime_error_page(message: str) -> str:
    return RUNTIME_ERROR_PAGE.render(message=message)


def internal_error_page(message: str) -> str:
    return INTERNAL_ERROR_PAGE.render(message=message)
