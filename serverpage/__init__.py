"""serverpage -- server-side pages with embedded statement and expression code."""

import logging

# Version - reads from package metadata (set in pyproject.toml)
try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("serverpage")
except PackageNotFoundError:
    __version__ = "0.0.0+dev"

logger = logging.getLogger(__name__)

from .composer import compile_error_page, compose, runtime_error_page
from .engine import (CompiledUnit, Diagnostic, EngineConfig, ExecutionEngine,
                     PythonEngine, new_slots)
from .errors import (CompileError, CompositionError, RuntimeFault,
                     ServerPageError)
from .lexer import Segment, SegmentKind, lex
from .processor import TemplateProcessor, process_script
from .results import ScriptResult
from .synthesis import Skeleton, SynthesizedUnit, synthesize

__all__ = [
    "CompileError",
    "CompiledUnit",
    "CompositionError",
    "Diagnostic",
    "EngineConfig",
    "ExecutionEngine",
    "PythonEngine",
    "RuntimeFault",
    "ScriptResult",
    "Segment",
    "SegmentKind",
    "ServerPageError",
    "Skeleton",
    "SynthesizedUnit",
    "TemplateProcessor",
    "compile_error_page",
    "compose",
    "lex",
    "new_slots",
    "process_script",
    "runtime_error_page",
    "synthesize",
]
