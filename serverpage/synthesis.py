"""Build the execution unit and markup skeleton from lexed segments."""

import io
import logging
import os
import tokenize
from typing import List, NamedTuple, Sequence, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .lexer import Segment, SegmentKind

logger = logging.getLogger(__name__)

ENTRY_POINT = "execute"
REQUEST_NAME = "request"
OUTPUT_NAME = "__output_values__"
INDENT = "    "

# generated lines that precede any template code
UNIT_HEADER = (
    f"def {ENTRY_POINT}({REQUEST_NAME}, {OUTPUT_NAME}):",
    f"{INDENT}pass",
)

# f-strings (3.12+) and t-strings (3.14+) tokenize as start/middle/end
_STRING_STARTS = {
    getattr(tokenize, name) for name in ("FSTRING_START", "TSTRING_START") if hasattr(tokenize, name)
}
_STRING_ENDS = {
    getattr(tokenize, name) for name in ("FSTRING_END", "TSTRING_END") if hasattr(tokenize, name)
}


class Skeleton(BaseModel):
    """Markup with insertion points where expression values go.

    ``parts`` holds the literal markup between insertion points, so there is
    always exactly one more part than there are expressions. Substitution is
    positional and never scans the markup, so markup that happens to look like
    a placeholder is left alone.
    """

    model_config = ConfigDict(frozen=True)

    parts: Tuple[str, ...] = ("",)

    @model_validator(mode="after")
    def _at_least_one_part(self):
        if not self.parts:
            raise ValueError("a skeleton needs at least one markup part")
        return self

    @property
    def expression_count(self) -> int:
        return len(self.parts) - 1

    def __str__(self):
        # display form only; compose() never parses this
        out = [self.parts[0]]
        for index, part in enumerate(self.parts[1:]):
            out.append(f"{{{index}}}")
            out.append(part)
        return "".join(out)


class SynthesizedUnit(BaseModel):
    """Everything one request needs after synthesis."""

    model_config = ConfigDict(frozen=True)

    source: str
    skeleton: Skeleton
    expression_count: int
    line_map: Tuple[int, ...] = Field(
        default=(),
        description="Template line for each line of `source` (0 for generated lines)",
    )
    column_map: Tuple[int, ...] = Field(
        default=(),
        description="Amount to add to a column of each `source` line to get the template column",
    )

    def template_line(self, unit_line: int) -> int:
        """Translate a 1-based line of `source` to a template line, or 0."""
        if 1 <= unit_line <= len(self.line_map):
            return self.line_map[unit_line - 1]
        return 0

    def template_position(self, unit_line: int, unit_column: int) -> Tuple[int, int]:
        """Translate a 1-based (line, column) of `source` to the template.

        Returns ``(0, 0)`` for generated lines. An unknown column (0) stays 0.
        """
        line = self.template_line(unit_line)
        if not line:
            return 0, 0
        if unit_column <= 0 or unit_line > len(self.column_map):
            return line, unit_column
        return line, max(1, unit_column + self.column_map[unit_line - 1])


class BlockLine(NamedTuple):
    """One line of a normalized statement block.

    ``column`` is the template column that ``code[0]`` corresponds to: for the
    first line it counts from the segment start, otherwise from the line start.
    ``verbatim`` lines continue a string literal and must not be reindented.
    """

    offset: int
    code: str
    column: int
    verbatim: bool


def string_continuation_lines(text: str) -> Set[int]:
    """Indexes of lines in ``text`` that begin inside a string literal.

    The text is tokenized inside a bracket so its indentation is irrelevant.
    Code that does not tokenize yields an empty set; the compiler reports it.
    """
    source = "(\n" + text + "\n)\n"
    rows: Set[int] = set()
    opened: List[int] = []
    try:
        for token in tokenize.generate_tokens(io.StringIO(source).readline):
            if token.type == tokenize.STRING:
                rows.update(range(token.start[0] + 1, token.end[0] + 1))
            elif token.type in _STRING_STARTS:
                opened.append(token.start[0])
            elif token.type in _STRING_ENDS and opened:
                rows.update(range(opened.pop() + 1, token.end[0] + 1))
    except (tokenize.TokenError, SyntaxError):
        return set()
    # line i of text sits on row i + 2, after the opening bracket
    return {row - 2 for row in rows}


def normalize_block(text: str) -> List[BlockLine]:
    """Reindent a statement block to column zero.

    Text sharing a line with the opening brace is stripped on its own and the
    remaining lines are dedented together. When the first line opens a Python
    block (ends with ``:``) and the next line sits at the dedented margin, the
    rest is nested one level under it. Lines that start inside a string
    literal are kept exactly as written.
    """
    lines = text.split("\n")
    in_string = string_continuation_lines(text)

    result = []
    first = lines[0].lstrip()
    if 1 not in in_string:
        first = first.rstrip()
    if first:
        leading = len(lines[0]) - len(lines[0].lstrip())
        result.append(BlockLine(0, first, leading + 1, False))

    code_lines = [
        line for offset, line in enumerate(lines[1:], start=1)
        if offset not in in_string and line.strip()
    ]
    margin = os.path.commonprefix(
        [line[: len(line) - len(line.lstrip())] for line in code_lines]
    )
    # nest only when the lines below were written relative to the opener
    opens_block = bool(code_lines) and first.endswith(":") and code_lines[0][len(margin)] not in " \t"
    nest = INDENT if opens_block else ""

    for offset, line in enumerate(lines[1:], start=1):
        if offset in in_string:
            result.append(BlockLine(offset, line, 1, True))
        elif line.strip():
            code = nest + line[len(margin):].rstrip()
            result.append(BlockLine(offset, code, len(margin) + 1 - len(nest), False))
    return result


def expression_assignment(index: int, expression: str) -> str:
    return f"{OUTPUT_NAME}[{index}] = str(({expression.strip()}))"


def synthesize(segments: Sequence[Segment]) -> SynthesizedUnit:
    """Concatenate code segments into one unit and markup into a skeleton.

    Expressions get slot indices in document order starting at 0; the index is
    the only link between a skeleton insertion point and its output slot.
    """
    code: List[str] = list(UNIT_HEADER)
    line_map: List[int] = [0] * len(UNIT_HEADER)
    column_map: List[int] = [0] * len(UNIT_HEADER)
    parts: List[str] = []
    current: List[str] = []
    count = 0

    def emit(text: str, line: int, column: int):
        # column: template column of text[0]
        code.append(text)
        line_map.append(line)
        column_map.append(column - 1)

    for segment in segments:
        if segment.kind is SegmentKind.MARKUP:
            current.append(segment.text)
        elif segment.kind is SegmentKind.STATEMENT:
            for block_line in normalize_block(segment.text):
                prefix = "" if block_line.verbatim else INDENT
                column = block_line.column
                if block_line.offset == 0:
                    column += segment.column - 1
                emit(prefix + block_line.code, segment.line + block_line.offset, column - len(prefix))
        else:
            parts.append("".join(current))
            current = []

            text = segment.text
            leading = text[: len(text) - len(text.lstrip())]
            line = segment.line + leading.count("\n")
            if "\n" in leading:
                column = len(leading) - leading.rfind("\n")
            else:
                column = segment.column + len(leading)

            # continuation lines sit inside the parentheses and are kept as written
            assignment = expression_assignment(count, text).split("\n")
            head = len(INDENT) + len(f"{OUTPUT_NAME}[{count}] = str((")
            emit(INDENT + assignment[0], line, column - head)
            for offset, rest in enumerate(assignment[1:], start=1):
                emit(rest, line + offset, 1)
            count += 1

    parts.append("".join(current))
    source = "\n".join(code) + "\n"
    logger.debug(f"Synthesized unit with {count} expression(s):\n{source}")

    return SynthesizedUnit(
        source=source,
        skeleton=Skeleton(parts=tuple(parts)),
        expression_count=count,
        line_map=tuple(line_map),
        column_map=tuple(column_map),
    )
