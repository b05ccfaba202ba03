"""
Operation sequence produced by the stackphy parser.

A program is a flat list of operations. Function definitions are not
nested: the body of a function is the slice of operations between a
FunctionStart/FunctionName(/StackComment) header and the matching
FunctionEnd marker. The interpreter extracts those slices at run time.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional, Union, TYPE_CHECKING
from .tokens import SourceSpan

if TYPE_CHECKING:
    from .runtime.builtins import BuiltinOperation


# =============================================================================
# Base Classes
# =============================================================================

@dataclass
class Operation:
    """Base class for all operations."""
    span: SourceSpan  # Source location for error reporting

    @property
    def display_name(self) -> str:
        """Name used in error messages."""
        return self.__class__.__name__


@dataclass
class Marker(Operation):
    """Base class for function-boundary markers (never executed directly)."""
    pass


# =============================================================================
# Executable Operations
# =============================================================================

@dataclass
class PushLiteral(Operation):
    """Push a number or string literal."""
    value: Union[int, float, str]

    @property
    def display_name(self) -> str:
        return repr(self.value)

    def __str__(self) -> str:
        if isinstance(self.value, str):
            return f'"{self.value}"'
        return str(self.value)


@dataclass
class PushArrayMarker(Operation):
    """Push the array-open sentinel ('[')."""

    @property
    def display_name(self) -> str:
        return "["

    def __str__(self) -> str:
        return "["


@dataclass
class NamedOperation(Operation):
    """A built-in operation, resolved case-insensitively at parse time."""
    name: str       # Registry key (lower case)
    lexeme: str     # Spelling used in the source
    builtin: Optional["BuiltinOperation"] = field(default=None, compare=False, repr=False)

    @property
    def display_name(self) -> str:
        return self.lexeme

    def __str__(self) -> str:
        return self.lexeme


@dataclass
class CallUserFunction(Operation):
    """Call a user function by name; resolved when executed."""
    name: str

    @property
    def display_name(self) -> str:
        return self.name

    def __str__(self) -> str:
        return self.name


# =============================================================================
# Function Boundary Markers
# =============================================================================

@dataclass
class FunctionStart(Marker):
    """':' - begins a function definition."""

    def __str__(self) -> str:
        return ":"


@dataclass
class FunctionName(Marker):
    """The name following ':'."""
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass
class StackComment(Marker):
    """Stack-effect documentation, e.g. '( n -- n2 )'. Not interpreted."""
    text: str

    def __str__(self) -> str:
        return f"( {self.text} )"


@dataclass
class FunctionEnd(Marker):
    """';' - ends a function definition."""

    def __str__(self) -> str:
        return ";"


# =============================================================================
# Program
# =============================================================================

@dataclass
class Program:
    """A parsed program: the flat operation sequence plus its source."""
    operations: List[Operation] = field(default_factory=list)
    source: str = ""
    filename: Optional[str] = None

    def __len__(self) -> int:
        return len(self.operations)

    def __iter__(self):
        return iter(self.operations)

    def __getitem__(self, index: Any):
        return self.operations[index]

    @property
    def function_names(self) -> List[str]:
        """Names of all functions defined in the program, in order."""
        return [op.name for op in self.operations if isinstance(op, FunctionName)]

    def get_source_line(self, line_num: int) -> Optional[str]:
        """Get a specific line of source (1-indexed)."""
        lines = self.source.splitlines()
        if 1 <= line_num <= len(lines):
            return lines[line_num - 1]
        return None

    def __str__(self) -> str:
        return " ".join(str(op) for op in self.operations)
