"""End-to-end tests for processing pages."""

import pytest

from serverpage import ScriptResult, TemplateProcessor, process_script
from serverpage.engine import CompiledUnit, Diagnostic, EngineConfig, ExecutionEngine, PythonEngine
from serverpage.errors import CompileError


@pytest.fixture
def processor():
    return TemplateProcessor()


def test_hello_world(processor):
    result = processor.process_script("Hello @{name}!", {"name": "World"})
    assert result == ScriptResult(error=False, result="Hello World!")


@pytest.mark.parametrize(
    "document",
    [
        "",
        "<html><body>plain</body></html>",
        "email: someone@example.org\n\ttabs and\nnewlines",
        "stray } closing",
        "}",
    ],
)
def test_markup_without_code_passes_through(processor, document):
    result = processor.process_script(document)
    assert not result.error
    assert result.result == document


def test_expressions_land_at_their_positions(processor):
    doc = "<td>@{a}</td><td>@{ int(b) * 2 }</td><td>@{ a + b }</td>"
    result = processor.process_script(doc, {"a": "x", "b": "21"})
    assert result.result == "<td>x</td><td>42</td><td>x21</td>"


def test_statements_feed_expressions(processor):
    doc = (
        "<ul>\n"
        "{\n"
        "items = request['items'].split(',')\n"
        "listing = ''.join(f'<li>{i}</li>' for i in items)\n"
        "}"
        "@{listing}\n"
        "</ul>"
    )
    result = processor.process_script(doc, {"items": "a,b"})
    assert result.result == "<ul>\n<li>a</li><li>b</li>\n</ul>"


def test_literal_placeholder_text_survives(processor):
    # markup that looks like the placeholder display form is never substituted
    result = processor.process_script("@{'{0}'} then @{1}", {})
    assert result.result == "{0} then 1"


def test_division_by_zero_is_a_runtime_error(processor):
    result = processor.process_script("{ x = 1/0; }")
    assert result.error
    assert "<h1>Runtime Error</h1>" in result.result
    assert "division" in result.result


def test_runtime_error_discards_partial_output(processor):
    result = processor.process_script("before @{'ok'} {boom = 1/0} after")
    assert result.error
    assert "before" not in result.result
    assert "ok" not in result.result


def test_unterminated_block_is_a_compile_error(processor):
    result = processor.process_script("{ if (true")
    assert result.error
    assert "<h1>Script Compilation Errors</h1>" in result.result
    assert "<li>1:" in result.result
    assert " - Error: " in result.result


def test_compile_errors_point_at_template_lines(processor):
    doc = "<p>one</p>\n<p>two</p>\n{ x = = 1 }"
    result = processor.process_script(doc)
    assert result.error
    assert "<li>3:" in result.result


def test_processing_is_idempotent(processor):
    doc = "{ counter = len(request) }@{counter} @{name.upper()}"
    first = processor.process_script(doc, {"name": "ada"})
    second = processor.process_script(doc, {"name": "ada"})
    assert first == second
    assert first.result == "1 ADA"


def test_request_is_not_mutated(processor):
    request = {"name": "World"}
    processor.process_script("{ x = dict(request) }@{name}", request)
    assert request == {"name": "World"}


def test_module_level_helper():
    assert process_script("@{ 6 * 7 }").result == "42"


def test_process_file(tmp_path, processor):
    page = tmp_path / "page.html"
    page.write_text("<h1>@{title}</h1>", encoding="utf-8")
    result = processor.process_file(page, {"title": "Hi"})
    assert result.result == "<h1>Hi</h1>"


def test_process_file_missing(tmp_path, processor):
    with pytest.raises(OSError):
        processor.process_file(tmp_path / "missing.html")


def test_prepare_exposes_generated_source(processor):
    unit = processor.prepare("@{a}{b = 1}")
    assert unit.expression_count == 1
    assert "b = 1" in unit.source


def test_serialized_engine_renders(processor):
    serial = TemplateProcessor(PythonEngine(EngineConfig(serialize=True)))
    assert serial.process_script("@{1}").result == "1"
    assert not serial.engine._lock.locked()


class BrokenUnit(CompiledUnit):
    def invoke(self, request, slots):
        # leaves the slot list too short for the skeleton
        slots.clear()


class BrokenEngine(ExecutionEngine):
    def compile(self, source):
        return BrokenUnit()


class RejectingEngine(ExecutionEngine):
    def compile(self, source):
        raise CompileError(
            [
                Diagnostic(line=1, column=1, message="first"),
                Diagnostic(line=2, column=1, message="second"),
            ]
        )


def test_composition_failure_becomes_error_result():
    result = TemplateProcessor(BrokenEngine()).process_script("@{a}")
    assert result.error
    assert "<h1>Internal Error</h1>" in result.result


def test_all_diagnostics_are_listed():
    result = TemplateProcessor(RejectingEngine()).process_script("anything")
    assert result.error
    assert result.result.count("<li>") == 2
    assert "Error: first" in result.result
    assert "Error: second" in result.result


def test_script_result_helpers():
    ok = ScriptResult.success("done")
    bad = ScriptResult.failure("<html></html>")
    assert bool(ok) and not bool(bad)
    assert str(ok) == "done"
    assert bad.error


def test_system_exit_in_page_code_is_a_runtime_error(processor):
    result = processor.process_script("{ raise SystemExit(3) }")
    assert result.error
    assert "<h1>Runtime Error</h1>" in result.result
    assert "SystemExit: 3" in result.result


def test_non_string_written_to_output_is_an_internal_error(processor):
    doc = "{ __output_values__.append(1) }@{'a'}{ __output_values__[0] = 5 }"
    result = processor.process_script(doc)
    assert result.error
    assert "<h1>Internal Error</h1>" in result.result
    assert "Slot 0 holds int" in result.result


def test_deeply_nested_expression_is_a_compile_error(processor):
    result = processor.process_script("@{" + "-" * 200000 + "1}")
    assert result.error
    assert "<h1>Script Compilation Errors</h1>" in result.result


def test_compile_errors_point_at_template_columns(processor):
    result = processor.process_script("x\n{ a = = 1 }")
    assert result.error
    assert "<li>2:7 - Error: " in result.result


def test_multiline_strings_render_unchanged(processor):
    result = processor.process_script('{ s = """a\n\n  b""" }@{repr(s)}')
    assert result.result == repr("a\n\n  b")

    result = processor.process_script('@{ """x\n  y""" }')
    assert result.result == "x\n  y"


def test_multiline_string_inside_indented_block(processor):
    doc = '<pre>{\n    if True:\n        text = """one\n  two"""\n}@{text}</pre>'
    result = processor.process_script(doc)
    assert result.result == "<pre>one\n  two</pre>"
