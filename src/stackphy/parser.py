"""
Single-pass parser for the stackphy language.

Converts a token stream into a flat operation sequence (see program.py).
There is no expression tree: each token becomes at most one operation.
Function definitions are emitted inline as a FunctionStart, FunctionName,
optional StackComment, body operations and FunctionEnd, and the
interpreter extracts the body slice when it reaches them.
"""

from typing import List, Optional
from .tokens import Token, TokenType, SourceSpan, OPERATOR_SYMBOLS, is_operation_token
from .program import (
    Operation, Program,
    PushLiteral, PushArrayMarker, NamedOperation, CallUserFunction,
    FunctionStart, FunctionName, StackComment, FunctionEnd,
)
from .errors import (
    LexerError,
    error_unexpected_token,
    error_unknown_operation,
    error_unterminated_array,
    error_unterminated_function,
    error_unterminated_stack_comment,
    error_missing_function_name,
    error_reserved_function_name,
    error_nested_function,
)
from .runtime.builtins import OperationRegistry, get_operation_registry


class Parser:
    """
    Parser for stackphy token streams.

    Usage:
        parser = Parser(tokens, source=source)
        program = parser.parse()

    Operation names are resolved against the registry case-insensitively,
    so `Normal`, `normal` and `NORMAL` all name the same operation. A
    bare identifier that is not an operation becomes a call to a user
    function, resolved when it executes.
    """

    def __init__(self, tokens: List[Token], filename: Optional[str] = None,
                 source: Optional[str] = None, registry: Optional[OperationRegistry] = None):
        self.tokens = tokens
        self.filename = filename
        self.source = source or ""
        self.registry = registry or get_operation_registry()
        self.pos = 0
        self._open_arrays: List[Token] = []  # '[' tokens not yet closed
        self._lines: Optional[List[str]] = None

    # =========================================================================
    # Token Navigation
    # =========================================================================

    def _current(self) -> Token:
        """Get current token."""
        if self.pos >= len(self.tokens):
            return self.tokens[-1]  # EOF
        return self.tokens[self.pos]

    def _is_at_end(self) -> bool:
        """Check if at end of tokens."""
        return self._current().type == TokenType.EOF

    def _check(self, token_type: TokenType) -> bool:
        """Check if current token is of given type."""
        return self._current().type == token_type

    def _advance(self) -> Token:
        """Consume and return current token."""
        token = self._current()
        if not self._is_at_end():
            self.pos += 1
        return token

    def _source_line(self, line_num: int) -> Optional[str]:
        if self._lines is None:
            self._lines = self.source.splitlines()
        if 1 <= line_num <= len(self._lines):
            return self._lines[line_num - 1]
        return None

    def _line_of(self, token: Token) -> Optional[str]:
        return self._source_line(token.line)

    @staticmethod
    def _describe(token: Token) -> str:
        if token.type == TokenType.EOF:
            return "end of file"
        return f"'{token.lexeme}'"

    def _raise_lexical(self, token: Token) -> None:
        """The parser treats any lexical error token as fatal."""
        raise LexerError(token.value)

    # =========================================================================
    # Program
    # =========================================================================

    def parse(self) -> Program:
        """Parse the whole token stream."""
        operations: List[Operation] = []
        while not self._is_at_end():
            token = self._current()
            if token.type == TokenType.FUNCTION_START:
                operations.extend(self._parse_function())
            else:
                operations.append(self._parse_operation(in_function=False))

        if self._open_arrays:
            opener = self._open_arrays[-1]
            raise error_unterminated_array(opener.span, self._line_of(opener))

        return Program(operations, self.source, self.filename)

    # =========================================================================
    # Statements
    # =========================================================================

    def _parse_operation(self, in_function: bool) -> Operation:
        """Parse one token into one operation."""
        token = self._advance()
        ttype = token.type

        if ttype == TokenType.ERROR:
            self._raise_lexical(token)

        if ttype in (TokenType.NUMBER, TokenType.STRING):
            return PushLiteral(token.span, token.value)

        if ttype == TokenType.LBRACKET:
            self._open_arrays.append(token)
            return PushArrayMarker(token.span)

        if ttype == TokenType.RBRACKET and self._open_arrays:
            self._open_arrays.pop()

        if is_operation_token(ttype):
            name = OPERATOR_SYMBOLS.get(ttype, token.lexeme)
            builtin = self.registry.lookup(name)
            if builtin is None:
                raise error_unknown_operation(token.lexeme, token.span, self._line_of(token))
            return NamedOperation(token.span, builtin.key, token.lexeme, builtin)

        if ttype == TokenType.IDENTIFIER:
            builtin = self.registry.lookup(token.lexeme)
            if builtin is not None:
                return NamedOperation(token.span, builtin.key, token.lexeme, builtin)
            return CallUserFunction(token.span, token.lexeme)

        if ttype == TokenType.FUNCTION_START and in_function:
            raise error_nested_function(token.span, self._line_of(token))

        raise error_unexpected_token(self._describe(token), token.span, self._line_of(token))

    def _parse_function(self) -> List[Operation]:
        """
        Parse ': name ( stack effect ) body ;' into a flat marker sequence.
        """
        start = self._advance()  # ':'
        ops: List[Operation] = [FunctionStart(start.span)]

        name_token = self._current()
        if name_token.type == TokenType.ERROR:
            self._raise_lexical(name_token)
        if name_token.type != TokenType.IDENTIFIER:
            raise error_missing_function_name(
                self._describe(name_token), name_token.span, self._line_of(name_token)
            )
        self._advance()
        name = name_token.value
        builtin = self.registry.lookup(name)
        if builtin is not None:
            raise error_reserved_function_name(
                name, builtin.name, name_token.span, self._line_of(name_token)
            )
        ops.append(FunctionName(name_token.span, name))

        if self._check(TokenType.LPAREN):
            ops.append(self._parse_stack_comment())

        while not self._check(TokenType.FUNCTION_END):
            if self._is_at_end():
                raise error_unterminated_function(name, start.span, self._line_of(start))
            ops.append(self._parse_operation(in_function=True))

        end = self._advance()  # ';'
        ops.append(FunctionEnd(end.span))
        return ops

    def _parse_stack_comment(self) -> StackComment:
        """Capture '( ... )' verbatim; the contents are documentation only."""
        open_paren = self._advance()
        parts: List[Token] = []
        while not self._check(TokenType.RPAREN):
            token = self._current()
            if self._is_at_end():
                raise error_unterminated_stack_comment(open_paren.span, self._line_of(open_paren))
            if token.type == TokenType.ERROR:
                self._raise_lexical(token)
            parts.append(self._advance())
        close_paren = self._advance()

        if self.source:
            text = self.source[open_paren.span.end.offset:close_paren.span.start.offset]
            text = " ".join(text.split())
        else:
            text = " ".join(t.lexeme for t in parts)
        span = SourceSpan(open_paren.span.start, close_paren.span.end)
        return StackComment(span, text)


def parse(tokens: List[Token], filename: Optional[str] = None, source: Optional[str] = None,
          registry: Optional[OperationRegistry] = None) -> Program:
    """
    Convenience function to parse tokens into a program.

    Args:
        tokens: List of tokens from the lexer
        filename: Optional filename for error messages
        source: Optional original source code for stack comments and
            source lines in diagnostics
        registry: Operation registry used to resolve names

    Returns:
        Parsed Program

    Raises:
        LexerError: If the token stream contains a lexical error
        ParserError: If parsing fails
    """
    parser = Parser(tokens, filename, source, registry)
    return parser.parse()


def parse_source(source: str, filename: Optional[str] = None,
                 registry: Optional[OperationRegistry] = None) -> Program:
    """Tokenize and parse source text in one step."""
    from .lexer import tokenize
    return parse(tokenize(source, filename), filename, source, registry)
