"""
The model-graph namespace.

A single flat, write-once namespace of named variables and user
functions. There is no scoping and no shadowing: once a name is bound it
stays bound until the environment is cleared.
"""

from typing import Dict, List, Optional

from .values import StackItem, Variable, UserFunction
from .sampling import Sampler
from ..errors import (
    error_duplicate_variable,
    error_undefined_variable,
    error_duplicate_function,
)


class Environment:
    """
    Named variables and user functions for one program execution.

    Views preserve definition order, which is also the order the
    exporter writes variables in.
    """

    def __init__(self, sampler: Optional[Sampler] = None):
        self._variables: Dict[str, Variable] = {}
        self._functions: Dict[str, UserFunction] = {}
        self.sampler = sampler or Sampler()

    # --- Variables ---

    def define_variable(self, name: str, value: StackItem, stochastic: bool) -> Variable:
        """Bind a new variable. Fails if the name is already bound."""
        if name in self._variables:
            raise error_duplicate_variable(name)
        variable = Variable(name, value, stochastic, sampler=self.sampler)
        self._variables[name] = variable
        return variable

    def get_variable(self, name: str) -> Variable:
        variable = self._variables.get(name)
        if variable is None:
            raise error_undefined_variable(name)
        return variable

    def has_variable(self, name: str) -> bool:
        return name in self._variables

    @property
    def variables(self) -> Dict[str, Variable]:
        return dict(self._variables)

    @property
    def variable_names(self) -> List[str]:
        return list(self._variables)

    def stochastic_variables(self) -> Dict[str, Variable]:
        return {name: v for name, v in self._variables.items() if v.stochastic}

    def deterministic_variables(self) -> Dict[str, Variable]:
        return {name: v for name, v in self._variables.items() if not v.stochastic}

    # --- Functions ---

    def define_function(self, function: UserFunction) -> None:
        if function.name in self._functions:
            raise error_duplicate_function(function.name)
        self._functions[function.name] = function

    def get_function(self, name: str) -> Optional[UserFunction]:
        return self._functions.get(name)

    def has_function(self, name: str) -> bool:
        return name in self._functions

    @property
    def functions(self) -> Dict[str, UserFunction]:
        return dict(self._functions)

    def clear(self) -> None:
        """Drop every binding (used by the REPL's :reset)."""
        self._variables.clear()
        self._functions.clear()

    def __len__(self) -> int:
        return len(self._variables)

    def __contains__(self, name: str) -> bool:
        return name in self._variables
