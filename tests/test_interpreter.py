"""
Tests for the interpreter (function extraction, error location, pipeline).
"""

import textwrap
import pytest

from stackphy import (
    execute, compile_and_run, parse_source,
    Interpreter, ExecutionResult, Environment,
    Program, FunctionStart, FunctionName, FunctionEnd, PushLiteral,
    SourceLocation, SourceSpan,
    DslError, ExecutionError, BindingError, DomainError, ParserError, LexerError,
)
from stackphy.runtime import UserFunction


NORMAL_PDF = """
: normalPdf ( sigma x mu -- pdf )
    swap - swap /
    dup * 2 / negate exp
    2 pi * sqrt 1 swap /
    *
;
"""


def _span(line=1, column=1):
    loc = SourceLocation(line, column, 0)
    return SourceSpan(loc, SourceLocation(line, column + 1, 1))


def top(source, seed=0):
    result = execute(source, interpreter=Interpreter(seed=seed))
    assert result.success, result.error_message
    return result.stack.peek().raw


class TestExecute:
    """Test the execute() pipeline."""

    def test_success_result(self):
        """Successful runs carry the environment and stack."""
        result = execute('1.0 0.5 Normal "x" ~ 42')
        assert isinstance(result, ExecutionResult)
        assert result.success
        assert result.error is None
        assert result.error_message is None
        assert isinstance(result.environment, Environment)
        assert list(result.variables) == ["x"]
        assert result.stack.peek().raw == 42

    def test_normal_binding(self):
        """1.0 0.5 Normal "x" ~ binds a Normal(1.0, 0.5)."""
        result = execute('1.0 0.5 Normal "x" ~')
        dist = result.environment.get_variable("x").distribution
        assert dist.type_name == "normal"
        assert dist.get("mean").raw == 1.0
        assert dist.get("sd").raw == 0.5

    def test_syntax_errors_are_captured(self):
        """Parse errors are returned, not raised."""
        result = execute("[ 1 2")
        assert not result.success
        assert isinstance(result.error, ParserError)

    def test_lexical_errors_are_captured(self):
        """Lexer errors are returned, not raised."""
        result = execute("1 @ 2")
        assert isinstance(result.error, LexerError)

    def test_first_failure_aborts(self):
        """Nothing after the failing operation runs."""
        result = execute('1 0 / 5 "n" =')
        assert not result.success
        assert not result.environment.has_variable("n")

    def test_compile_and_run(self):
        """compile_and_run returns the environment and raises on failure."""
        env = compile_and_run('5 "n" =')
        assert env.get_variable("n").value() == 5
        with pytest.raises(DslError):
            compile_and_run("1 0 /")

    def test_state_persists_across_runs(self):
        """One interpreter keeps its bindings between programs."""
        interp = Interpreter()
        assert execute(": sq dup * ;", interpreter=interp).success
        assert execute('3 sq "nine" =', interpreter=interp).success
        assert interp.environment.get_variable("nine").value() == 9

    def test_reset(self):
        """reset() clears stack, variables and functions."""
        interp = Interpreter()
        execute(': f 1 ; 2 "n" = 3', interpreter=interp)
        interp.reset()
        assert interp.stack.is_empty()
        assert len(interp.environment) == 0
        assert interp.environment.get_function("f") is None


class TestUserFunctions:
    """Test function extraction and calls."""

    def test_double(self):
        """: double ( n -- n2 ) 2 * ; 5 double yields 10."""
        assert top(": double ( n -- n2 ) 2 * ; 5 double") == 10

    def test_definition_registers_function(self):
        """Definitions register a UserFunction with its stack effect."""
        result = execute(": double ( n -- n*2 ) 2 * ;")
        fn = result.environment.get_function("double")
        assert isinstance(fn, UserFunction)
        assert fn.stack_effect == "n -- n*2"
        assert len(fn.body) == 2
        assert result.stack.is_empty()

    def test_normal_pdf(self):
        """A multi-line function computes the normal density."""
        assert top(NORMAL_PDF + "1 0 0 normalPdf") == pytest.approx(0.3989, abs=1e-4)
        assert top(NORMAL_PDF + "1 -1 0 normalPdf") == pytest.approx(0.2420, abs=1e-4)

    def test_standard_normal_constant(self):
        """1/sqrt(2 pi)."""
        assert top("2 pi * sqrt 1 swap /") == pytest.approx(0.3989, abs=1e-4)

    def test_functions_calling_functions(self):
        """A function body may call earlier functions."""
        assert top(": sq dup * ; : quad sq sq ; 2 quad") == 16

    def test_forward_reference_resolved_at_call(self):
        """Calls resolve when executed, not when defined."""
        assert top(": a b ; : b 7 ; a") == 7

    def test_function_body_sees_global_stack(self):
        """Functions share the one stack."""
        assert top(": add3 + + ; 1 2 3 add3") == 6

    def test_function_binds_variables(self):
        """Bindings inside a function go to the global environment."""
        result = execute(': prior 1.0 Exponential "rate" ~ ; prior')
        assert result.environment.has_variable("rate")

    def test_function_reruns_fresh_literals(self):
        """Each call pushes new literal values."""
        result = execute(": one 1 ; one one +")
        assert result.stack.peek().raw == 2

    def test_undefined_function(self):
        """Calling an unknown name is E403."""
        result = execute("1 frobnicate")
        assert isinstance(result.error, BindingError)
        assert result.error.code == "E403"
        assert result.error.operation == "frobnicate"

    def test_duplicate_function(self):
        """Function names are write-once (E406)."""
        result = execute(": f 1 ; : f 2 ; f")
        assert result.error.code == "E406"
        assert result.environment.get_function("f").body[0].value == 1

    def test_function_names_are_case_sensitive(self):
        """User function lookup uses the exact spelling."""
        result = execute(": sq dup * ; 3 SQ")
        assert result.error.code == "E403"


class TestErrorLocation:
    """Test that failures name the operation and its position."""

    def test_division_by_zero_location(self):
        """Division by zero names '/' and gives the position."""
        result = execute("1.0 0 /")
        error = result.error
        assert isinstance(error, DomainError)
        assert error.code == "E412"
        assert error.operation == "/"
        assert error.line == 1
        assert error.column == 7
        assert "error executing operation '/'" in str(error)

    def test_location_on_later_line(self):
        """Line and column follow the failing token."""
        source = textwrap.dedent("""\
            1 2 +
              drop drop
        """)
        error = execute(source).error
        assert error.code == "E410"
        assert error.operation == "drop"
        assert error.line == 2
        assert error.column == 8

    def test_caret_display(self):
        """The formatted error shows the source line and a caret."""
        error = execute("1 0 /", filename="model.sp").error
        text = str(error)
        assert "model.sp:1:5" in text
        assert "1 0 /" in text
        assert "^" in text

    def test_error_inside_function(self):
        """Errors keep their innermost location and record the call site."""
        error = execute(": bad 1 0 / ;\nbad").error
        assert error.code == "E412"
        assert error.line == 1
        assert error.column == 11
        assert len(error.diagnostic.related) == 1
        call_site = error.diagnostic.related[0]
        assert "in call to 'bad'" in call_site.message
        assert call_site.span.start.line == 2

    def test_nested_call_sites(self):
        """Each enclosing call adds a related diagnostic."""
        error = execute(": inner 0 log ; : outer inner ; outer").error
        assert error.code == "E413"
        messages = [r.message for r in error.diagnostic.related]
        assert messages == ["in call to 'inner'", "in call to 'outer'"]

    def test_error_to_json(self):
        """Diagnostics serialize for tooling."""
        data = execute("1 0 /").error.diagnostic.to_json()
        assert data["code"] == "E412"
        assert data["range"]["start"]["column"] == 5


class TestMalformedMarkers:
    """Test marker sequences that bypass the parser."""

    def test_missing_function_name(self):
        """':' must be followed by a name marker (E430)."""
        program = Program([FunctionStart(_span()), PushLiteral(_span(), 1), FunctionEnd(_span())])
        with pytest.raises(ExecutionError) as exc_info:
            Interpreter().run(program)
        assert exc_info.value.code == "E430"

    def test_unclosed_definition(self):
        """A definition without FunctionEnd is E430."""
        program = Program([FunctionStart(_span()), FunctionName(_span(), "f"), PushLiteral(_span(), 1)])
        with pytest.raises(ExecutionError) as exc_info:
            Interpreter().run(program)
        assert exc_info.value.code == "E430"
        assert "'f'" in str(exc_info.value)

    def test_stray_function_end(self):
        """FunctionEnd outside a definition is E430."""
        program = Program([FunctionEnd(_span())])
        with pytest.raises(ExecutionError) as exc_info:
            Interpreter().run(program)
        assert exc_info.value.code == "E430"

    def test_parsed_program_runs(self):
        """Interpreter.run accepts parser output directly."""
        interp = Interpreter()
        env = interp.run(parse_source(": double 2 * ; 21 double"))
        assert env is interp.environment
        assert interp.stack.peek().raw == 42


class TestDeterminism:
    """Test reproducible sampling."""

    SOURCE = '0.0 1.0 Normal "x" ~'

    def test_same_seed_same_samples(self):
        """Equal seeds give equal stand-in values."""
        a = execute(self.SOURCE, interpreter=Interpreter(seed=42))
        b = execute(self.SOURCE, interpreter=Interpreter(seed=42))
        assert a.environment.get_variable("x").value() == b.environment.get_variable("x").value()

    def test_reset_restores_seed(self):
        """reset() restarts the sampling sequence."""
        interp = Interpreter(seed=5)
        execute(self.SOURCE, interpreter=interp)
        first = interp.environment.get_variable("x").value()
        interp.reset()
        execute(self.SOURCE, interpreter=interp)
        assert interp.environment.get_variable("x").value() == first

    def test_environment_seed_override(self):
        """A seed passed with an environment reseeds its sampler."""
        env = Environment()
        interp = Interpreter(environment=env, seed=9)
        assert interp.sampler.seed == 9
        assert interp.environment is env
