"""The lex -> synthesize -> compile -> invoke -> compose pipeline."""

import logging
from pathlib import Path
from typing import List, Mapping, Optional, Union

from decouple import config as env_config

from .composer import compile_error_page, compose, internal_error_page, runtime_error_page
from .engine import Diagnostic, ExecutionEngine, PythonEngine, new_slots
from .errors import CompileError, CompositionError, RuntimeFault
from .lexer import lex
from .results import ScriptResult
from .synthesis import SynthesizedUnit, synthesize

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = env_config("SERVERPAGE_ENCODING", default="utf-8")


class TemplateProcessor:
    """Render server pages against request parameters.

    Each call recompiles the page from scratch; nothing is cached between
    requests. Whether calls may overlap depends on the engine (see
    :mod:`serverpage.engine`).

    Example:
        >>> TemplateProcessor().process_script("Hello @{name}!", {"name": "World"}).result
        'Hello World!'
    """

    def __init__(self, engine: Optional[ExecutionEngine] = None):
        self.engine = engine or PythonEngine()

    def prepare(self, document: str) -> SynthesizedUnit:
        """Lex and synthesize without running anything."""
        return synthesize(lex(document))

    def process_script(
        self, document: str, request: Optional[Mapping[str, str]] = None
    ) -> ScriptResult:
        """Render ``document``. Failures come back as an error result, never raised."""
        request = dict(request or {})
        unit = self.prepare(document)
        slots = new_slots(unit.expression_count)

        with self.engine.session():
            try:
                compiled = self.engine.compile(unit.source)
            except CompileError as e:
                diagnostics = remap_diagnostics(e.diagnostics, unit)
                return ScriptResult.failure(compile_error_page(diagnostics))

            try:
                compiled.invoke(request, slots)
            except RuntimeFault as e:
                # slots written before the fault are dropped with the request
                return ScriptResult.failure(runtime_error_page(e.message))

        try:
            rendered = compose(unit.skeleton, slots)
        except CompositionError as e:
            logger.error(f"Composition failed: {e}")
            return ScriptResult.failure(internal_error_page(str(e)))

        logger.debug(f"Rendered {unit.expression_count} expression(s)")
        return ScriptResult.success(rendered)

    def process_file(
        self,
        path: Union[str, Path],
        request: Optional[Mapping[str, str]] = None,
        encoding: Optional[str] = None,
    ) -> ScriptResult:
        """Read a page from disk and render it. I/O errors propagate."""
        path = Path(path)
        document = path.read_text(encoding=encoding or DEFAULT_ENCODING)
        logger.debug(f"Processing {path}")
        return self.process_script(document, request)


def remap_diagnostics(
    diagnostics: List[Diagnostic], unit: SynthesizedUnit
) -> List[Diagnostic]:
    """Point diagnostics at template positions where the code came from the template.

    Diagnostics on generated code keep their unit line and column.
    """
    remapped = []
    for d in diagnostics:
        line, column = unit.template_position(d.line, d.column)
        if line:
            d = d.model_copy(update={"line": line, "column": column})
        remapped.append(d)
    return remapped


def process_script(
    document: str,
    request: Optional[Mapping[str, str]] = None,
    engine: Optional[ExecutionEngine] = None,
) -> ScriptResult:
    """Render ``document`` with a one-off processor."""
    return TemplateProcessor(engine).process_script(document, request)
