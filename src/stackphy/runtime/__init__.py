"""
stackphy runtime - sequential interpreter for stack programs.

This module provides:
- Interpreter: Executes operation sequences against a stack and environment
- Stack items: Primitive, Variable, Distribution, Model, Sequence, Constraint
- Environment: The write-once namespace of variables and user functions
- OperationRegistry: Built-in operation implementations
- Sampler: Seedable stand-in values for stochastic variables
"""

from .values import (
    StackItem,
    StackItemType,
    Parameter,
    Primitive,
    PrimitiveKind,
    Variable,
    Distribution,
    DistributionKind,
    Model,
    ModelKind,
    Sequence,
    Constraint,
    ConstraintKind,
    UserFunction,
    ARRAY_MARKER,
    int_val,
    float_val,
    string_val,
    array_val,
)

from .stack import Stack

from .environment import Environment

from .sampling import Sampler

from .builtins import (
    BuiltinOperation,
    OperationGroup,
    OperationRegistry,
    get_operation_registry,
)

from .interpreter import (
    Interpreter,
    InterpreterState,
    ExecutionResult,
    execute,
    compile_and_run,
)

__all__ = [
    # Values
    "StackItem",
    "StackItemType",
    "Parameter",
    "Primitive",
    "PrimitiveKind",
    "Variable",
    "Distribution",
    "DistributionKind",
    "Model",
    "ModelKind",
    "Sequence",
    "Constraint",
    "ConstraintKind",
    "UserFunction",
    "ARRAY_MARKER",
    "int_val",
    "float_val",
    "string_val",
    "array_val",
    # Containers
    "Stack",
    "Environment",
    "Sampler",
    # Builtins
    "BuiltinOperation",
    "OperationGroup",
    "OperationRegistry",
    "get_operation_registry",
    # Interpreter
    "Interpreter",
    "InterpreterState",
    "ExecutionResult",
    "execute",
    "compile_and_run",
]
