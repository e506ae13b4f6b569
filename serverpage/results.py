"""Result type returned by the processor."""

from pydantic import BaseModel, Field


class ScriptResult(BaseModel):
    """Outcome of processing one page.

    On success ``result`` is the rendered markup; when ``error`` is set it is
    an HTML page describing what went wrong.
    """

    error: bool = False
    result: str = Field(default="", description="Rendered markup or HTML error page")

    @classmethod
    def success(cls, text: str) -> "ScriptResult":
        return cls(error=False, result=text)

    @classmethod
    def failure(cls, page: str) -> "ScriptResult":
        return cls(error=True, result=page)

    def __str__(self):
        return self.result

    def __bool__(self):
        return not self.error
