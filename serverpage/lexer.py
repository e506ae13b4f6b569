"""Split a server page into markup, statement and expression segments.

Code is delimited by braces: ``{ ... }`` is a statement block and
``@{ ... }`` an expression whose value is written inline. Braces nested
inside code are tracked so blocks like ``{ d = {"a": 1} }`` stay intact.
"""

import logging
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

OPEN = "{"
CLOSE = "}"
EXPRESSION_PREFIX = "@"


class SegmentKind(str, Enum):
    MARKUP = "markup"
    STATEMENT = "statement"
    EXPRESSION = "expression"


class Segment(BaseModel):
    """A contiguous run of document text of a single kind.

    ``line`` and ``column`` (both 1-based) locate the first character of
    ``text`` in the document, i.e. the character after any opening delimiter.
    """

    model_config = ConfigDict(frozen=True)

    text: str
    kind: SegmentKind
    line: int = 1
    column: int = 1

    @property
    def is_code(self) -> bool:
        return self.kind is not SegmentKind.MARKUP

    def __str__(self):
        return self.text


class _Scanner:
    """Character-level state machine behind :func:`lex`."""

    def __init__(self, text: str):
        self.text = text
        self.segments: List[Segment] = []
        self.kind = SegmentKind.MARKUP
        self.depth = 0
        self.buffer: List[str] = []
        self.line = 1
        self.column = 1
        self.start = (1, 1)

    def _advance(self, char: str):
        if char == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1

    def _flush(self, next_kind: SegmentKind):
        text = "".join(self.buffer)
        # empty markup between two code blocks carries nothing worth keeping
        if text or self.kind is not SegmentKind.MARKUP:
            line, column = self.start
            self.segments.append(
                Segment(text=text, kind=self.kind, line=line, column=column)
            )
        self.buffer = []
        self.kind = next_kind
        self.start = (self.line, self.column)

    def run(self) -> List[Segment]:
        text = self.text
        i = 0
        while i < len(text):
            char = text[i]

            if self.kind is SegmentKind.MARKUP:
                if char == EXPRESSION_PREFIX and text[i + 1:i + 2] == OPEN:
                    self._advance(char)
                    self._advance(OPEN)
                    self.depth = 1
                    self._flush(SegmentKind.EXPRESSION)
                    i += 2
                    continue
                if char == OPEN:
                    self._advance(char)
                    self.depth = 1
                    self._flush(SegmentKind.STATEMENT)
                    i += 1
                    continue
                self.buffer.append(char)
                self._advance(char)
                i += 1
                continue

            # inside a statement or expression
            if char == OPEN:
                self.depth += 1
                self.buffer.append(char)
                self._advance(char)
            elif char == CLOSE:
                if self.depth > 0:
                    self.depth -= 1
                self._advance(char)
                if self.depth == 0:
                    self._flush(SegmentKind.MARKUP)
                else:
                    self.buffer.append(char)
            else:
                self.buffer.append(char)
                self._advance(char)
            i += 1

        if self.buffer:
            line, column = self.start
            self.segments.append(
                Segment(text="".join(self.buffer), kind=self.kind, line=line, column=column)
            )
            if self.kind is not SegmentKind.MARKUP:
                logger.debug(
                    f"Unterminated {self.kind.value} block at {line}:{column} (depth {self.depth})"
                )
        return self.segments


def lex(document: str) -> List[Segment]:
    """Split ``document`` into segments in document order.

    Never raises. Unbalanced braces leave garbage in the code segments, which
    the engine then rejects at compile time. A stray ``}`` outside code is
    kept as ordinary markup.

    Example:
        >>> [(s.kind.value, s.text) for s in lex("Hi @{name}!")]
        [('markup', 'Hi '), ('expression', 'name'), ('markup', '!')]
    """
    segments = _Scanner(document).run()
    logger.debug(f"Lexed {len(document)} characters into {len(segments)} segments")
    return segments
