"""
stackphy - a stack-based language for phylogenetic models.

This module provides:
- Lexer: Tokenizes stackphy source code
- Parser: Builds a flat operation sequence from tokens
- Interpreter: Executes operations to build a model graph
- CodePhyExporter: Serializes the model graph to CodePhy JSON/YAML

Usage:
    from stackphy import execute

    result = execute('''
        : double ( n -- n2 ) 2 * ;
        1.0 0.5 Normal "x" ~
        5 double "y" =
    ''')
    if result.success:
        for name, variable in result.variables.items():
            print(variable)
    else:
        print(result.error_message)
"""

__version__ = "0.1.0"

from .tokens import (
    Token,
    TokenType,
    SourceLocation,
    SourceSpan,
    KEYWORDS,
)

from .lexer import (
    Lexer,
    tokenize,
)

from .parser import (
    Parser,
    parse,
    parse_source,
)

from .program import (
    Operation,
    Program,
    PushLiteral,
    PushArrayMarker,
    NamedOperation,
    CallUserFunction,
    FunctionStart,
    FunctionName,
    StackComment,
    FunctionEnd,
)

from .errors import (
    DslError,
    LexerError,
    ParserError,
    ExecutionError,
    BindingError,
    DomainError,
    StackUnderflowError,
    TypeMismatchError,
    UnsupportedOperationError,
    Diagnostic,
    DiagnosticCollector,
    ErrorSeverity,
)

from .runtime import (
    Interpreter,
    ExecutionResult,
    Environment,
    Stack,
    execute,
    compile_and_run,
)

from .export import CodePhyExporter

__all__ = [
    "__version__",
    # Tokens
    "Token",
    "TokenType",
    "SourceLocation",
    "SourceSpan",
    "KEYWORDS",
    # Lexer
    "Lexer",
    "tokenize",
    # Parser
    "Parser",
    "parse",
    "parse_source",
    # Program
    "Operation",
    "Program",
    "PushLiteral",
    "PushArrayMarker",
    "NamedOperation",
    "CallUserFunction",
    "FunctionStart",
    "FunctionName",
    "StackComment",
    "FunctionEnd",
    # Errors
    "DslError",
    "LexerError",
    "ParserError",
    "ExecutionError",
    "BindingError",
    "DomainError",
    "StackUnderflowError",
    "TypeMismatchError",
    "UnsupportedOperationError",
    "Diagnostic",
    "DiagnosticCollector",
    "ErrorSeverity",
    # Runtime
    "Interpreter",
    "ExecutionResult",
    "Environment",
    "Stack",
    "execute",
    "compile_and_run",
    # Export
    "CodePhyExporter",
]
