"""
Unit tests for the stackphy parser.
"""

import pytest
from stackphy import (
    tokenize, parse, parse_source,
    Program, PushLiteral, PushArrayMarker, NamedOperation, CallUserFunction,
    FunctionStart, FunctionName, StackComment, FunctionEnd,
    LexerError, ParserError,
)


class TestOperations:
    """Test one-token-one-operation mapping."""

    def test_empty_program(self):
        """Empty source parses to an empty program."""
        program = parse_source("")
        assert isinstance(program, Program)
        assert len(program) == 0

    def test_literals(self):
        """Numbers and strings become PushLiteral operations."""
        program = parse_source('1 2.5 "x"')
        assert [type(op) for op in program] == [PushLiteral] * 3
        assert [op.value for op in program] == [1, 2.5, "x"]

    def test_operator_symbols(self):
        """Operator symbols resolve to registry operations."""
        program = parse_source("1 2 + 3 *")
        ops = program.operations
        assert isinstance(ops[2], NamedOperation)
        assert ops[2].name == "+"
        assert ops[4].name == "*"
        assert ops[2].builtin is not None

    def test_keyword_operation(self):
        """Keywords resolve to lower-case registry keys."""
        op = parse_source("1.0 0.5 Normal")[2]
        assert isinstance(op, NamedOperation)
        assert op.name == "normal"
        assert op.lexeme == "Normal"

    def test_case_insensitive_identifier(self):
        """Non-canonical spellings still find the built-in."""
        program = parse_source("1 DUP Swap")
        assert isinstance(program[1], NamedOperation)
        assert program[1].name == "dup"
        assert program[1].display_name == "DUP"
        assert program[2].name == "swap"

    def test_user_function_call(self):
        """Unknown identifiers become user function calls."""
        op = parse_source("5 double")[1]
        assert isinstance(op, CallUserFunction)
        assert op.name == "double"

    def test_array_brackets(self):
        """'[' pushes a marker; ']' is the closing operation."""
        program = parse_source("[ 1 2 ]")
        assert isinstance(program[0], PushArrayMarker)
        assert isinstance(program[3], NamedOperation)
        assert program[3].name == "]"

    def test_nested_arrays(self):
        """Nested arrays parse to balanced markers."""
        program = parse_source("[ 1 [ 2 3 ] 4 ]")
        markers = [op for op in program if isinstance(op, PushArrayMarker)]
        assert len(markers) == 2

    def test_unbalanced_close_bracket_parses(self):
        """A stray ']' is a runtime error, not a syntax error."""
        program = parse_source("1 ]")
        assert program[1].name == "]"

    def test_spans(self):
        """Operations carry the span of their token."""
        program = parse_source("1\n  dup")
        assert program[1].span.start.line == 2
        assert program[1].span.start.column == 3

    def test_parse_from_tokens(self):
        """parse() accepts a token list directly."""
        source = "1 2 +"
        program = parse(tokenize(source), source=source)
        assert len(program) == 3
        assert str(program) == "1 2 +"


class TestFunctionDefinitions:
    """Test function marker sequences."""

    def test_function_markers(self):
        """A definition is emitted as a flat marker sequence."""
        program = parse_source(": double ( n -- n2 ) 2 * ;")
        assert [type(op) for op in program] == [
            FunctionStart, FunctionName, StackComment,
            PushLiteral, NamedOperation, FunctionEnd,
        ]
        assert program[1].name == "double"
        assert program[2].text == "n -- n2"

    def test_stack_comment_verbatim(self):
        """The stack comment is taken from the source text."""
        program = parse_source(": double ( n -- n*2 ) 2 * ;")
        assert program[2].text == "n -- n*2"

    def test_stack_comment_optional(self):
        """Definitions without a stack comment."""
        program = parse_source(": sq dup * ;")
        assert [type(op) for op in program] == [
            FunctionStart, FunctionName, NamedOperation, NamedOperation, FunctionEnd,
        ]

    def test_empty_body(self):
        """A function may have an empty body."""
        program = parse_source(": noop ;")
        assert [type(op) for op in program] == [FunctionStart, FunctionName, FunctionEnd]

    def test_function_names(self):
        """Program lists the functions it defines."""
        program = parse_source(": a 1 ; : b 2 ; a b")
        assert program.function_names == ["a", "b"]

    def test_multiline_definition(self):
        """Definitions can span lines."""
        source = """
        : normalPdf ( sigma x mu -- pdf )
            swap - swap /
            dup * 2 / negate exp
        ;
        """
        program = parse_source(source)
        assert program.function_names == ["normalPdf"]
        assert isinstance(program.operations[-1], FunctionEnd)


class TestParserErrors:
    """Test parser error handling."""

    def test_unterminated_array(self):
        """Missing ']' is E104."""
        with pytest.raises(ParserError) as exc_info:
            parse_source("[ 1 2")
        assert "E104" in str(exc_info.value)

    def test_unterminated_function(self):
        """Missing ';' is E105."""
        with pytest.raises(ParserError) as exc_info:
            parse_source(": f 1 2")
        assert exc_info.value.code == "E105"
        assert "'f'" in str(exc_info.value)

    def test_unterminated_stack_comment(self):
        """Missing ')' is E106."""
        with pytest.raises(ParserError) as exc_info:
            parse_source(": f ( n -- ")
        assert exc_info.value.code == "E106"

    def test_missing_function_name(self):
        """':' must be followed by an identifier (E107)."""
        with pytest.raises(ParserError) as exc_info:
            parse_source(": 1 2 ;")
        assert exc_info.value.code == "E107"

    def test_keyword_as_function_name(self):
        """Keywords cannot be redefined as functions."""
        with pytest.raises(ParserError) as exc_info:
            parse_source(": dup 1 ;")
        assert exc_info.value.code == "E107"

    @pytest.mark.parametrize("source,builtin", [
        (": yule 1 ;", "Yule"),
        (": DUP 1 ;", "dup"),
        (": hky 2 ;", "HKY"),
    ])
    def test_builtin_name_in_other_case(self, source, builtin):
        """Names that match a built-in ignoring case are rejected (E107)."""
        with pytest.raises(ParserError) as exc_info:
            parse_source(source)
        assert exc_info.value.code == "E107"
        assert f"'{builtin}'" in str(exc_info.value)

    def test_nested_function(self):
        """Definitions cannot nest (E108)."""
        with pytest.raises(ParserError) as exc_info:
            parse_source(": f : g ; ;")
        assert exc_info.value.code == "E108"

    def test_stray_semicolon(self):
        """';' outside a definition is E101."""
        with pytest.raises(ParserError) as exc_info:
            parse_source("1 ;")
        assert exc_info.value.code == "E101"

    def test_stray_paren(self):
        """Parentheses are only valid after a function name."""
        with pytest.raises(ParserError) as exc_info:
            parse_source("1 ( 2 )")
        assert exc_info.value.code == "E101"

    def test_reserved_keyword_without_operation(self):
        """Reserved words with no implementation are E103."""
        with pytest.raises(ParserError) as exc_info:
            parse_source("1 2 scale")
        assert exc_info.value.code == "E103"
        assert "unknown operation 'scale'" in str(exc_info.value)

    def test_lexer_error_surfaces(self):
        """A lexical error token aborts parsing with a LexerError."""
        with pytest.raises(LexerError) as exc_info:
            parse_source("1 @")
        assert exc_info.value.code == "E001"

    def test_error_location(self):
        """Errors report line and column of the offending token."""
        with pytest.raises(ParserError) as exc_info:
            parse_source("1 2\n  )")
        assert exc_info.value.line == 2
        assert exc_info.value.column == 3
        assert "  )" in str(exc_info.value)
