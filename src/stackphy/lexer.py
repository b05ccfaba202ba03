"""
Lexer for the stackphy language.

Converts source text into a flat stream of tokens for the parser.
Supports:
- Line comments (// to end of line)
- Signed integer and floating point numbers with optional exponent
- Double-quoted strings (escape sequences are kept verbatim)
- Array brackets, stack-effect parentheses and function delimiters (: ;)
- Operator symbols (~ = + - * /)
- Keywords for every built-in operation

The lexer never raises. Malformed input becomes an ERROR token carrying
its diagnostic, and scanning resumes so several lexical errors can be
reported together.
"""

import math
from typing import List, Optional, Iterator
from .tokens import Token, TokenType, SourceLocation, SourceSpan, KEYWORDS
from .errors import (
    DiagnosticCollector,
    LexerError,
    error_unexpected_character,
    error_unterminated_string,
    error_invalid_number_literal,
)


class Lexer:
    """
    Tokenizer for stackphy programs.

    Usage:
        lexer = Lexer(source_code)
        tokens = lexer.tokenize()
        if lexer.diagnostics.has_errors:
            print(lexer.diagnostics.format_all())

    Or for streaming:
        lexer = Lexer(source_code)
        for token in lexer:
            process(token)
    """

    def __init__(self, source: str, filename: Optional[str] = None):
        self.source = source
        self.filename = filename
        self.pos = 0            # Current position in source
        self.line = 1           # Current line (1-indexed)
        self.column = 1         # Current column (1-indexed)
        self._lines: Optional[List[str]] = None  # Cached line list
        self.diagnostics = DiagnosticCollector()

    @property
    def lines(self) -> List[str]:
        """Lazy-load line list for error reporting."""
        if self._lines is None:
            self._lines = self.source.splitlines()
        return self._lines

    def get_source_line(self, line_num: int) -> Optional[str]:
        """Get a specific line of source (1-indexed)."""
        if 1 <= line_num <= len(self.lines):
            return self.lines[line_num - 1]
        return None

    def _location(self) -> SourceLocation:
        """Get current source location."""
        return SourceLocation(self.line, self.column, self.pos, self.filename)

    def _span(self, start: SourceLocation) -> SourceSpan:
        """Create a span from start to current position."""
        return SourceSpan(start, self._location())

    def _peek(self, offset: int = 0) -> str:
        """Look at character at current position + offset without consuming."""
        idx = self.pos + offset
        if idx >= len(self.source):
            return '\0'
        return self.source[idx]

    def _advance(self) -> str:
        """Consume and return current character."""
        if self.pos >= len(self.source):
            return '\0'
        ch = self.source[self.pos]
        self.pos += 1
        if ch == '\n':
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return ch

    def _is_at_end(self) -> bool:
        """Check if we've reached end of source."""
        return self.pos >= len(self.source)

    def _skip_comment(self) -> None:
        """Skip a line comment (// to end of line)."""
        while self._peek() != '\n' and not self._is_at_end():
            self._advance()

    def _skip_whitespace_and_comments(self) -> None:
        """Skip whitespace (including newlines) and line comments."""
        while not self._is_at_end():
            ch = self._peek()
            if ch in ' \t\r\n':
                self._advance()
            elif ch == '/' and self._peek(1) == '/':
                self._skip_comment()
            else:
                break

    def _make_token(self, token_type: TokenType, value, start: SourceLocation,
                    lexeme: Optional[str] = None) -> Token:
        """Create a token."""
        span = self._span(start)
        if lexeme is None:
            lexeme = self.source[start.offset:self.pos]
        return Token(token_type, value, lexeme, span)

    def _error_token(self, error: LexerError, start: SourceLocation) -> Token:
        """Record a lexical error and wrap it as an ERROR token."""
        self.diagnostics.add_error(error)
        return self._make_token(TokenType.ERROR, error.diagnostic, start)

    @staticmethod
    def _is_digit(ch: str) -> bool:
        return '0' <= ch <= '9'

    @staticmethod
    def _is_identifier_start(ch: str) -> bool:
        return ch.isascii() and (ch.isalpha() or ch == '_')

    @staticmethod
    def _is_identifier_char(ch: str) -> bool:
        return ch.isascii() and (ch.isalnum() or ch == '_')

    def _starts_number(self) -> bool:
        """Check whether the current position begins a numeric literal."""
        ch = self._peek()
        if self._is_digit(ch):
            return True
        if ch == '.':
            return self._is_digit(self._peek(1))
        if ch in '+-':
            nxt = self._peek(1)
            return self._is_digit(nxt) or (nxt == '.' and self._is_digit(self._peek(2)))
        return False

    def _scan_string(self) -> Token:
        """Scan a double-quoted string literal, keeping escapes verbatim."""
        start = self._location()
        self._advance()  # consume opening quote

        while not self._is_at_end() and self._peek() != '"':
            ch = self._peek()
            if ch == '\n':
                break
            if ch == '\\' and self._peek(1) not in ('\n', '\0'):
                self._advance()  # backslash stays part of the value
            self._advance()

        if self._peek() != '"':
            # Unterminated: the rest of the line belongs to the error token
            error = error_unterminated_string(
                self._span(start),
                self.get_source_line(start.line)
            )
            return self._error_token(error, start)

        self._advance()  # consume closing quote
        lexeme = self.source[start.offset:self.pos]
        return self._make_token(TokenType.STRING, lexeme[1:-1], start, lexeme)

    def _scan_number(self) -> Token:
        """Scan a numeric literal: [+-]?([0-9]*.)?[0-9]+([eE][+-]?[0-9]+)?"""
        start = self._location()
        is_float = False

        if self._peek() in '+-':
            self._advance()

        while self._is_digit(self._peek()):
            self._advance()

        # Fractional part
        if self._peek() == '.' and self._is_digit(self._peek(1)):
            is_float = True
            self._advance()  # consume '.'
            while self._is_digit(self._peek()):
                self._advance()

        # Exponent, only when digits follow
        if self._peek() in 'eE':
            if self._is_digit(self._peek(1)) or (
                    self._peek(1) in '+-' and self._is_digit(self._peek(2))):
                is_float = True
                self._advance()  # consume 'e'
                if self._peek() in '+-':
                    self._advance()
                while self._is_digit(self._peek()):
                    self._advance()

        lexeme = self.source[start.offset:self.pos]
        try:
            value = float(lexeme) if is_float else int(lexeme)
            # Every number must also be usable as a double
            if math.isinf(float(value)):
                raise OverflowError(lexeme)
        except (ValueError, OverflowError):
            error = error_invalid_number_literal(
                lexeme if len(lexeme) <= 20 else lexeme[:17] + "...",
                self._span(start),
                self.get_source_line(start.line)
            )
            return self._error_token(error, start)
        return self._make_token(TokenType.NUMBER, value, start, lexeme)

    def _scan_identifier_or_keyword(self) -> Token:
        """Scan an identifier or keyword."""
        start = self._location()

        while self._is_identifier_char(self._peek()):
            self._advance()

        lexeme = self.source[start.offset:self.pos]
        token_type = KEYWORDS.get(lexeme, TokenType.IDENTIFIER)
        return self._make_token(token_type, lexeme, start, lexeme)

    def _scan_token(self) -> Token:
        """Scan the next token."""
        self._skip_whitespace_and_comments()

        if self._is_at_end():
            return self._make_token(TokenType.EOF, None, self._location(), "")

        ch = self._peek()

        if ch == '"':
            return self._scan_string()

        if self._starts_number():
            return self._scan_number()

        if self._is_identifier_start(ch):
            return self._scan_identifier_or_keyword()

        start = self._location()
        self._advance()

        single_char_tokens = {
            '[': TokenType.LBRACKET,
            ']': TokenType.RBRACKET,
            '(': TokenType.LPAREN,
            ')': TokenType.RPAREN,
            ',': TokenType.COMMA,
            ':': TokenType.FUNCTION_START,
            ';': TokenType.FUNCTION_END,
            '~': TokenType.TILDE,
            '=': TokenType.EQUAL,
            '+': TokenType.PLUS,
            '-': TokenType.MINUS,
            '*': TokenType.STAR,
            '/': TokenType.SLASH,
        }

        if ch in single_char_tokens:
            return self._make_token(single_char_tokens[ch], ch, start)

        error = error_unexpected_character(
            ch, self._span(start), self.get_source_line(start.line)
        )
        return self._error_token(error, start)

    def tokenize(self) -> List[Token]:
        """Tokenize the entire source, returning a list of tokens."""
        tokens = []
        while True:
            token = self._scan_token()
            tokens.append(token)
            if token.type == TokenType.EOF:
                break
        return tokens

    def __iter__(self) -> Iterator[Token]:
        """Iterate over tokens."""
        while True:
            token = self._scan_token()
            yield token
            if token.type == TokenType.EOF:
                break


def tokenize(source: str, filename: Optional[str] = None) -> List[Token]:
    """
    Convenience function to tokenize source code.

    Args:
        source: The source code to tokenize
        filename: Optional filename for error messages

    Returns:
        List of tokens, ending with EOF. Lexical errors appear in the
        list as ERROR tokens whose value is the Diagnostic.
    """
    lexer = Lexer(source, filename)
    return lexer.tokenize()
