"""
stackphy exceptions and error handling.

Error code ranges:
- E0xx: Lexer errors
- E1xx: Parser errors
- E4xx: Execution errors (binding, domain, unsupported operation)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List
from .tokens import SourceSpan


class ErrorSeverity(Enum):
    """Severity levels for diagnostics."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    HINT = "hint"


@dataclass
class Diagnostic:
    """A single diagnostic message (error, warning, etc.)."""
    code: str                       # E001, E101, etc.
    message: str                    # Human-readable message
    severity: ErrorSeverity
    span: Optional[SourceSpan] = None   # Unset until the failing operation is known
    source_line: Optional[str] = None   # The actual line of source code
    hints: List[str] = field(default_factory=list)
    related: List["Diagnostic"] = field(default_factory=list)

    def format(self, show_source: bool = True) -> str:
        """Format the diagnostic for display."""
        parts = []

        # Header: location: severity[code]: message
        header = f"{self.severity.value}[{self.code}]: {self.message}"
        if self.span is not None:
            header = f"{self.span.start}: {header}"
        parts.append(header)

        # Source line with caret
        if show_source and self.span is not None and self.source_line is not None:
            parts.append("  |")
            line_num = str(self.span.start.line)
            parts.append(f"{line_num:>3} | {self.source_line}")

            col = self.span.start.column
            end_col = self.span.end.column if self.span.start.line == self.span.end.line else len(self.source_line) + 1
            underline_len = max(1, end_col - col)
            parts.append(f"    | {' ' * (col - 1)}{'^' * underline_len}")

        for hint in self.hints:
            parts.append(f"    = hint: {hint}")

        for related in self.related:
            where = f"{related.span.start}: " if related.span is not None else ""
            parts.append(f"    --> {where}{related.message}")

        return "\n".join(parts)

    def to_json(self) -> dict:
        """Convert to JSON-serializable dict for tooling integration."""
        result = {
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
            "range": None,
            "hints": self.hints,
            "related": [r.to_json() for r in self.related],
        }
        if self.span is not None:
            result["range"] = {
                "start": {
                    "line": self.span.start.line,
                    "column": self.span.start.column,
                    "offset": self.span.start.offset,
                },
                "end": {
                    "line": self.span.end.line,
                    "column": self.span.end.column,
                    "offset": self.span.end.offset,
                },
            }
        return result


class DslError(Exception):
    """Base exception for stackphy errors."""

    def __init__(self, diagnostic: Diagnostic):
        self.diagnostic = diagnostic
        super().__init__(diagnostic.message)

    @property
    def code(self) -> str:
        return self.diagnostic.code

    @property
    def span(self) -> Optional[SourceSpan]:
        return self.diagnostic.span

    @property
    def line(self) -> Optional[int]:
        return self.diagnostic.span.start.line if self.diagnostic.span else None

    @property
    def column(self) -> Optional[int]:
        return self.diagnostic.span.start.column if self.diagnostic.span else None

    def __str__(self) -> str:
        return self.diagnostic.format()


class LexerError(DslError):
    """Error during lexical analysis (E0xx)."""
    pass


class ParserError(DslError):
    """Error during parsing (E1xx)."""
    pass


class ExecutionError(DslError):
    """
    Error while interpreting an operation sequence (E4xx).

    Operation implementations raise these without a location; the
    interpreter attaches the failing operation's name and span with
    `locate()` before propagating.
    """

    def __init__(self, diagnostic: Diagnostic, operation: Optional[str] = None):
        super().__init__(diagnostic)
        self.operation = operation

    @property
    def is_located(self) -> bool:
        return self.diagnostic.span is not None

    def locate(self, operation: str, span: SourceSpan,
               source_line: Optional[str] = None) -> "ExecutionError":
        """Attach the failing operation and its source position."""
        if self.is_located:
            return self
        self.operation = operation
        self.diagnostic.span = span
        self.diagnostic.source_line = source_line
        self.diagnostic.message = f"error executing operation '{operation}': {self.diagnostic.message}"
        self.args = (self.diagnostic.message,)
        return self

    def add_call_site(self, function_name: str, span: SourceSpan) -> None:
        """Record a user function call the error propagated through."""
        self.diagnostic.related.append(Diagnostic(
            code=self.diagnostic.code,
            message=f"in call to '{function_name}'",
            severity=ErrorSeverity.INFO,
            span=span,
        ))


class BindingError(ExecutionError):
    """Name binding or lookup failure (E401-E406)."""
    pass


class DomainError(ExecutionError):
    """Stack shape, variant or numeric domain failure (E410-E416)."""
    pass


class StackUnderflowError(DomainError):
    """Too few items on the stack (E410)."""
    pass


class TypeMismatchError(DomainError):
    """Wrong stack item variant for an operation (E411)."""
    pass


class UnsupportedOperationError(ExecutionError):
    """A recognized operation that is intentionally not implemented (E420)."""
    pass


# --- Lexer error codes ---

def error_unexpected_character(char: str, span: SourceSpan, source_line: str = None) -> LexerError:
    """E001: Unexpected character."""
    diag = Diagnostic(
        code="E001",
        message=f"unexpected character '{char}'",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return LexerError(diag)


def error_unterminated_string(span: SourceSpan, source_line: str = None) -> LexerError:
    """E002: Unterminated string literal."""
    diag = Diagnostic(
        code="E002",
        message="unterminated string literal",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
        hints=["string literals must be closed with a double quote on the same line"],
    )
    return LexerError(diag)


def error_invalid_number_literal(text: str, span: SourceSpan, source_line: str = None) -> LexerError:
    """E003: Invalid number literal."""
    diag = Diagnostic(
        code="E003",
        message=f"invalid number literal '{text}'",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return LexerError(diag)


# --- Parser error codes ---

def error_unexpected_token(found: str, span: SourceSpan,
                           source_line: str = None) -> ParserError:
    """E101: Token cannot begin a statement."""
    diag = Diagnostic(
        code="E101",
        message=f"unexpected {found}",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return ParserError(diag)


def error_unknown_operation(name: str, span: SourceSpan,
                            source_line: str = None) -> ParserError:
    """E103: Keyword with no registered operation."""
    diag = Diagnostic(
        code="E103",
        message=f"unknown operation '{name}'",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return ParserError(diag)


def error_unterminated_array(span: SourceSpan, source_line: str = None) -> ParserError:
    """E104: Array opened with '[' is never closed."""
    diag = Diagnostic(
        code="E104",
        message="unterminated array (expected closing ']')",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return ParserError(diag)


def error_unterminated_function(name: str, span: SourceSpan,
                                source_line: str = None) -> ParserError:
    """E105: Function definition is never closed."""
    diag = Diagnostic(
        code="E105",
        message=f"unterminated function definition '{name}' (expected ';')",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return ParserError(diag)


def error_unterminated_stack_comment(span: SourceSpan, source_line: str = None) -> ParserError:
    """E106: Stack-effect comment is never closed."""
    diag = Diagnostic(
        code="E106",
        message="unterminated stack-effect comment (expected ')')",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return ParserError(diag)


def error_missing_function_name(found: str, span: SourceSpan,
                                source_line: str = None) -> ParserError:
    """E107: ':' not followed by a function name."""
    diag = Diagnostic(
        code="E107",
        message=f"expected function name after ':', found {found}",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
        hints=["function definitions look like ': name ( in -- out ) body ;'"],
    )
    return ParserError(diag)


def error_reserved_function_name(name: str, builtin: str, span: SourceSpan,
                                 source_line: str = None) -> ParserError:
    """E107: Function name that would be shadowed by a built-in."""
    diag = Diagnostic(
        code="E107",
        message=f"function name '{name}' is taken by built-in operation '{builtin}'",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
        hints=["built-in names are matched ignoring case; choose another name"],
    )
    return ParserError(diag)


def error_nested_function(span: SourceSpan, source_line: str = None) -> ParserError:
    """E108: Function definition inside another function body."""
    diag = Diagnostic(
        code="E108",
        message="function definitions cannot be nested",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return ParserError(diag)


# --- Execution error codes ---

def _execution_diag(code: str, message: str, hints: List[str] = None) -> Diagnostic:
    return Diagnostic(
        code=code,
        message=message,
        severity=ErrorSeverity.ERROR,
        hints=hints or [],
    )


def error_duplicate_variable(name: str) -> BindingError:
    """E401: Variable name already bound."""
    return BindingError(_execution_diag("E401", f"variable '{name}' already defined"))


def error_undefined_variable(name: str) -> BindingError:
    """E402: Variable name not bound."""
    return BindingError(_execution_diag("E402", f"variable '{name}' not defined"))


def error_undefined_function(name: str) -> BindingError:
    """E403: Function name not bound."""
    return BindingError(_execution_diag(
        "E403", f"function '{name}' not defined",
        hints=["functions must be defined with ': name ... ;' before they are called"],
    ))


def error_observe_deterministic(name: str) -> BindingError:
    """E404: observe on a deterministic variable."""
    return BindingError(_execution_diag(
        "E404", f"cannot observe deterministic variable '{name}'",
        hints=["only variables bound with '~' can receive observed data"],
    ))


def error_stochastic_requires_distribution(name: str, found: str) -> BindingError:
    """E405: '~' applied to something that is not a distribution."""
    return BindingError(_execution_diag(
        "E405", f"stochastic variable '{name}' requires a distribution, found {found}",
    ))


def error_duplicate_function(name: str) -> BindingError:
    """E406: Function name already bound."""
    return BindingError(_execution_diag("E406", f"function '{name}' already defined"))


def error_stack_underflow(needed: int, available: int) -> StackUnderflowError:
    """E410: Stack underflow."""
    return StackUnderflowError(_execution_diag(
        "E410", f"stack underflow: needs {needed} item(s), found {available}",
    ))


def error_type_mismatch(expected: str, found: str) -> TypeMismatchError:
    """E411: Wrong stack item variant."""
    return TypeMismatchError(_execution_diag(
        "E411", f"expected {expected}, found {found}",
    ))


def error_division_by_zero() -> DomainError:
    """E412: Division by zero."""
    return DomainError(_execution_diag("E412", "division by zero"))


def error_math_domain(message: str) -> DomainError:
    """E413: Argument outside a math function's domain."""
    return DomainError(_execution_diag("E413", message))


def error_invalid_parameter(message: str) -> DomainError:
    """E414: Invalid distribution or model parameter."""
    return DomainError(_execution_diag("E414", message))


def error_index_out_of_range(index, size: int) -> DomainError:
    """E415: Stack index out of range."""
    return DomainError(_execution_diag(
        "E415", f"index {index} out of range for stack of size {size}",
    ))


def error_missing_array_marker() -> DomainError:
    """E416: ']' without a matching '['."""
    return DomainError(_execution_diag(
        "E416", "no array marker on the stack",
        hints=["arrays are written '[ a b c ]'"],
    ))


def error_unsupported_operation(name: str) -> UnsupportedOperationError:
    """E420: Recognized but unimplemented operation."""
    return UnsupportedOperationError(_execution_diag(
        "E420", f"operation '{name}' is not supported",
    ), operation=name)


def error_malformed_function(message: str) -> ExecutionError:
    """E430: Function markers out of order."""
    return ExecutionError(_execution_diag("E430", message))


class DiagnosticCollector:
    """Collects diagnostics during lexing and parsing."""

    def __init__(self):
        self.diagnostics: List[Diagnostic] = []
        self._error_count = 0

    def add(self, diagnostic: Diagnostic) -> None:
        """Add a diagnostic."""
        self.diagnostics.append(diagnostic)
        if diagnostic.severity == ErrorSeverity.ERROR:
            self._error_count += 1

    def add_error(self, error: DslError) -> None:
        """Add an error exception as a diagnostic."""
        self.add(error.diagnostic)

    @property
    def error_count(self) -> int:
        return self._error_count

    @property
    def warning_count(self) -> int:
        return sum(1 for d in self.diagnostics if d.severity == ErrorSeverity.WARNING)

    @property
    def has_errors(self) -> bool:
        return self._error_count > 0

    def format_all(self, show_source: bool = True) -> str:
        """Format all diagnostics for display."""
        parts = [d.format(show_source) for d in self.diagnostics]
        if self._error_count > 0:
            parts.append(f"\n{self._error_count} error(s), {self.warning_count} warning(s)")
        elif self.warning_count > 0:
            parts.append(f"\n{self.warning_count} warning(s)")
        return "\n\n".join(parts)
