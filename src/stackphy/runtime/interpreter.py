"""
Sequential interpreter for stackphy programs.

Walks the flat operation sequence with a single cursor, executing
operations against one Stack and one Environment. Function definitions
arrive as marker-delimited slices and are extracted into UserFunctions
as they are reached.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, List, Optional, Sequence as Seq

from .values import Primitive, Variable, UserFunction, ARRAY_MARKER
from .stack import Stack
from .environment import Environment
from .sampling import Sampler
from .builtins import OperationRegistry

from ..program import (
    Operation, Marker, Program,
    PushLiteral, PushArrayMarker, NamedOperation, CallUserFunction,
    FunctionStart, FunctionName, StackComment, FunctionEnd,
)
from ..errors import (
    DslError,
    ExecutionError,
    error_undefined_function,
    error_unsupported_operation,
    error_malformed_function,
)

# Reported by front ends when a user function recurses without bound
RECURSION_MESSAGE = "maximum recursion depth exceeded (recursive function call?)"


class InterpreterState(Enum):
    """Cursor state while walking an operation sequence."""
    NORMAL = auto()               # Executing operations
    COLLECTING_FUNCTION = auto()  # Between ':' and ';'


@dataclass
class ExecutionResult:
    """Result of executing a program."""
    success: bool
    environment: Optional[Environment] = None
    stack: Optional[Stack] = None
    error: Optional[DslError] = None

    @property
    def error_message(self) -> Optional[str]:
        """Formatted diagnostic of the failure, if any."""
        if self.error is None:
            return None
        return str(self.error)

    @property
    def variables(self) -> Dict[str, Variable]:
        """The bound variables in definition order."""
        if self.environment is None:
            return {}
        return self.environment.variables


class Interpreter:
    """
    Interpreter for stackphy operation sequences.

    One interpreter owns its stack, environment, sampler and operation
    registry, so state persists across successive run() calls (the REPL
    relies on this).
    """

    def __init__(self, registry: Optional[OperationRegistry] = None,
                 environment: Optional[Environment] = None,
                 seed: Optional[int] = None):
        """
        Initialize the interpreter.

        Args:
            registry: Operation registry; a fresh one is built if omitted
            environment: Environment to bind into; a fresh one is created
                if omitted
            seed: Seed for the sampling generator
        """
        self.registry = registry or OperationRegistry()
        if environment is None:
            environment = Environment(Sampler(seed))
        elif seed is not None:
            environment.sampler.reseed(seed)
        self.environment = environment
        self.stack = Stack()
        self._source_lines: List[str] = []

    @property
    def sampler(self) -> Sampler:
        return self.environment.sampler

    def run(self, program: Program) -> Environment:
        """
        Execute a parsed program.

        Returns:
            The environment holding every binding made so far

        Raises:
            ExecutionError: On the first failing operation
        """
        self._source_lines = program.source.splitlines()
        self._execute_sequence(program.operations)
        return self.environment

    def reset(self) -> None:
        """Clear the stack and every binding; the seed is kept."""
        self.stack.clear()
        self.environment.clear()
        self.sampler.reseed(self.sampler.seed)

    # =========================================================================
    # Sequence Walking
    # =========================================================================

    def _execute_sequence(self, operations: Seq[Operation]) -> None:
        """Execute operations in order, extracting function definitions."""
        state = InterpreterState.NORMAL
        start: Optional[FunctionStart] = None
        name_op: Optional[FunctionName] = None
        stack_effect: Optional[str] = None
        body: List[Operation] = []

        for op in operations:
            if state == InterpreterState.NORMAL:
                if isinstance(op, FunctionStart):
                    state = InterpreterState.COLLECTING_FUNCTION
                    start, name_op, stack_effect, body = op, None, None, []
                elif isinstance(op, Marker):
                    raise self._locate(
                        error_malformed_function(f"'{op}' outside a function definition"), op)
                else:
                    self._execute_operation(op)
                continue

            # Collecting a function definition
            if name_op is None:
                if not isinstance(op, FunctionName):
                    raise self._locate(
                        error_malformed_function(f"expected function name after ':', found '{op}'"), op)
                name_op = op
            elif isinstance(op, StackComment) and stack_effect is None and not body:
                stack_effect = op.text
            elif isinstance(op, FunctionEnd):
                self._define_function(name_op, stack_effect, body)
                state = InterpreterState.NORMAL
            elif isinstance(op, Marker):
                raise self._locate(
                    error_malformed_function(f"unexpected '{op}' in body of '{name_op.name}'"), op)
            else:
                body.append(op)

        if state == InterpreterState.COLLECTING_FUNCTION:
            name = name_op.name if name_op is not None else "?"
            raise self._locate(
                error_malformed_function(f"function definition '{name}' is never closed"), start)

    def _define_function(self, name_op: FunctionName, stack_effect: Optional[str],
                         body: List[Operation]) -> None:
        function = UserFunction(name_op.name, body, stack_effect)
        try:
            self.environment.define_function(function)
        except ExecutionError as e:
            self._locate(e, name_op, name_op.name)
            raise

    # =========================================================================
    # Operations
    # =========================================================================

    def _execute_operation(self, op: Operation) -> None:
        """Execute one non-marker operation."""
        try:
            if isinstance(op, PushLiteral):
                self.stack.push(Primitive.of(op.value))
            elif isinstance(op, PushArrayMarker):
                self.stack.push(ARRAY_MARKER)
            elif isinstance(op, NamedOperation):
                builtin = self.registry.lookup(op.name) or op.builtin
                if builtin is None:
                    raise error_unsupported_operation(op.lexeme)
                builtin(self.stack, self.environment)
            elif isinstance(op, CallUserFunction):
                self._call_function(op)
            else:
                raise error_malformed_function(f"cannot execute {type(op).__name__}")
        except ExecutionError as e:
            self._locate(e, op)
            raise

    def _call_function(self, op: CallUserFunction) -> None:
        function = self.environment.get_function(op.name)
        if function is None:
            raise error_undefined_function(op.name)
        try:
            self._execute_sequence(function.body)
        except ExecutionError as e:
            e.add_call_site(op.name, op.span)
            raise

    def _locate(self, error: ExecutionError, op: Operation,
                name: Optional[str] = None) -> ExecutionError:
        """Attach the failing operation's name and position to an error."""
        return error.locate(name or op.display_name, op.span,
                            self._source_line(op.span.start.line))

    def _source_line(self, line_num: int) -> Optional[str]:
        if 1 <= line_num <= len(self._source_lines):
            return self._source_lines[line_num - 1]
        return None


# Convenience function for simple execution
def execute(source: str, filename: Optional[str] = None,
            interpreter: Optional[Interpreter] = None) -> ExecutionResult:
    """
    Lex, parse and run source text.

    Lexical, syntax and execution errors are captured in the result
    instead of being raised. Passing an interpreter continues from its
    current state.
    """
    from ..parser import parse_source

    interpreter = interpreter or Interpreter()
    try:
        program = parse_source(source, filename, interpreter.registry)
        interpreter.run(program)
    except DslError as e:
        return ExecutionResult(
            success=False,
            environment=interpreter.environment,
            stack=interpreter.stack,
            error=e,
        )
    return ExecutionResult(
        success=True,
        environment=interpreter.environment,
        stack=interpreter.stack,
    )


def compile_and_run(source: str, seed: Optional[int] = None) -> Environment:
    """
    High-level API to run source code in one call.

        from stackphy import compile_and_run

        env = compile_and_run('1.0 0.5 Normal "x" ~')
        print(env.get_variable("x").distribution)

    Raises:
        DslError: The first lexical, syntax or execution error
    """
    from ..parser import parse_source

    interpreter = Interpreter(seed=seed)
    return interpreter.run(parse_source(source, registry=interpreter.registry))
