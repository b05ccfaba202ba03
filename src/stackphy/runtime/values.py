"""
Runtime stack items for the stackphy interpreter.

Every value on the stack is one of a closed set of variants:
Primitive, Variable, Distribution, Model, Sequence, Constraint and
UserFunction, plus the ARRAY_MARKER sentinel pushed by '['.

Primitive and Variable also implement the Parameter capability: they can
be asked for a numeric, string or array value on demand. Distributions
and models hold their inputs as Parameters and validate them when they
are constructed.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence as Seq, Tuple, TYPE_CHECKING

from ..errors import (
    error_type_mismatch,
    error_invalid_parameter,
    error_observe_deterministic,
    error_stochastic_requires_distribution,
)

if TYPE_CHECKING:
    from .sampling import Sampler
    from ..program import Operation


class StackItemType(Enum):
    """Variant tag for stack items."""
    PRIMITIVE = "primitive"
    VARIABLE = "variable"
    DISTRIBUTION = "distribution"
    MODEL = "model"
    SEQUENCE = "sequence"
    CONSTRAINT = "constraint"
    USER_FUNCTION = "function"
    ARRAY_MARKER = "array marker"


class StackItem(ABC):
    """Base class for everything that can live on the stack."""

    item_type: StackItemType

    def describe(self) -> str:
        """Short description used in error messages."""
        return self.item_type.value


class Parameter(ABC):
    """
    Capability: anything that can yield a number, string or array.

    Implemented by Primitive and Variable.
    """

    @abstractmethod
    def value(self) -> Any:
        """The raw Python value (int, float, str or list)."""

    @property
    def name(self) -> Optional[str]:
        return None

    def is_integer(self) -> bool:
        v = self.value()
        return isinstance(v, int) and not isinstance(v, bool)

    def is_numeric(self) -> bool:
        return is_number(self.value())

    def is_string(self) -> bool:
        return isinstance(self.value(), str)

    def is_array(self) -> bool:
        return isinstance(self.value(), list)

    def numeric_value(self) -> float:
        v = self.value()
        if not is_number(v):
            raise error_type_mismatch("number", describe_raw(v))
        return float(v)

    def string_value(self) -> str:
        v = self.value()
        if not isinstance(v, str):
            raise error_type_mismatch("string", describe_raw(v))
        return v

    def array_value(self) -> list:
        v = self.value()
        if not isinstance(v, list):
            raise error_type_mismatch("array", describe_raw(v))
        return v


def is_number(v: Any) -> bool:
    """True for int and float values (bool excluded)."""
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def describe_raw(v: Any) -> str:
    """Describe a raw value for error messages."""
    if isinstance(v, StackItem):
        return v.describe()
    if isinstance(v, bool):
        return "boolean"
    if isinstance(v, int):
        return "integer"
    if isinstance(v, float):
        return "number"
    if isinstance(v, str):
        return "string"
    if isinstance(v, list):
        return "array"
    return type(v).__name__


# =============================================================================
# Array Marker
# =============================================================================

class _ArrayMarker(StackItem):
    """Sentinel pushed by '[' and consumed by ']'."""

    item_type = StackItemType.ARRAY_MARKER

    def __repr__(self) -> str:
        return "ARRAY_MARKER"


ARRAY_MARKER = _ArrayMarker()


# =============================================================================
# Primitive
# =============================================================================

class PrimitiveKind(Enum):
    """Representation tag for anonymous literals."""
    INTEGER = "integer"
    DOUBLE = "double"
    STRING = "string"
    ARRAY = "array"


@dataclass
class Primitive(StackItem, Parameter):
    """
    An anonymous literal: integer, double, string or array.

    Integers and doubles are tagged separately so exporters can emit `5`
    versus `5.0`. Array elements are raw values (int, float, str, nested
    lists) or non-Primitive stack items kept by reference.
    """
    kind: PrimitiveKind
    raw: Any

    item_type = StackItemType.PRIMITIVE

    def __post_init__(self):
        checks = {
            PrimitiveKind.INTEGER: lambda v: isinstance(v, int) and not isinstance(v, bool),
            PrimitiveKind.DOUBLE: lambda v: isinstance(v, float),
            PrimitiveKind.STRING: lambda v: isinstance(v, str),
            PrimitiveKind.ARRAY: lambda v: isinstance(v, list),
        }
        if not checks[self.kind](self.raw):
            raise ValueError(f"{self.kind.value} primitive cannot hold {self.raw!r}")

    @classmethod
    def of(cls, value: Any) -> "Primitive":
        """Wrap a raw Python value, choosing the kind from its type."""
        if isinstance(value, Primitive):
            return value.copy()
        if isinstance(value, bool):
            raise ValueError("booleans are not primitive values")
        if isinstance(value, int):
            return cls(PrimitiveKind.INTEGER, value)
        if isinstance(value, float):
            return cls(PrimitiveKind.DOUBLE, value)
        if isinstance(value, str):
            return cls(PrimitiveKind.STRING, value)
        if isinstance(value, (list, tuple)):
            return cls(PrimitiveKind.ARRAY, list(value))
        raise ValueError(f"cannot wrap {type(value).__name__} as a primitive")

    def value(self) -> Any:
        return self.raw

    def is_integer(self) -> bool:
        return self.kind == PrimitiveKind.INTEGER

    def is_double(self) -> bool:
        return self.kind == PrimitiveKind.DOUBLE

    def is_numeric(self) -> bool:
        return self.kind in (PrimitiveKind.INTEGER, PrimitiveKind.DOUBLE)

    def is_string(self) -> bool:
        return self.kind == PrimitiveKind.STRING

    def is_array(self) -> bool:
        return self.kind == PrimitiveKind.ARRAY

    def copy(self) -> "Primitive":
        """A fresh, equal-valued Primitive (arrays are copied one level deep)."""
        raw = list(self.raw) if self.kind == PrimitiveKind.ARRAY else self.raw
        return Primitive(self.kind, raw)

    def describe(self) -> str:
        return self.kind.value

    def __str__(self) -> str:
        return format_raw(self.raw)


def int_val(n: int) -> Primitive:
    """Create an integer primitive."""
    return Primitive(PrimitiveKind.INTEGER, int(n))


def float_val(x: float) -> Primitive:
    """Create a double primitive."""
    return Primitive(PrimitiveKind.DOUBLE, float(x))


def string_val(s: str) -> Primitive:
    """Create a string primitive."""
    return Primitive(PrimitiveKind.STRING, str(s))


def array_val(items: Seq[Any]) -> Primitive:
    """Create an array primitive from raw values or stack items."""
    return Primitive(PrimitiveKind.ARRAY, list(items))


def format_raw(v: Any) -> str:
    """Render a raw value the way the REPL shows it."""
    if isinstance(v, str):
        return f'"{v}"'
    if isinstance(v, list):
        return "[" + ", ".join(format_raw(x) for x in v) + "]"
    if isinstance(v, StackItem):
        return str(v)
    return repr(v)


# =============================================================================
# Distribution
# =============================================================================

class DistributionKind(Enum):
    """Distribution tags (the value is the serialized type name)."""
    NORMAL = "normal"
    LOGNORMAL = "logNormal"
    EXPONENTIAL = "exponential"
    GAMMA = "gamma"
    DIRICHLET = "dirichlet"
    YULE = "yule"
    BIRTH_DEATH = "birthDeath"
    COALESCENT = "coalescent"
    PHYLO_CTMC = "phyloCTMC"
    DISCRETE_GAMMA = "discreteGamma"
    DISCRETE_GAMMA_VECTOR = "discreteGammaVector"


# Declared parameter names, in push order
DISTRIBUTION_PARAMETERS: Dict[DistributionKind, Tuple[str, ...]] = {
    DistributionKind.NORMAL: ("mean", "sd"),
    DistributionKind.LOGNORMAL: ("meanlog", "sdlog"),
    DistributionKind.EXPONENTIAL: ("rate",),
    DistributionKind.GAMMA: ("shape", "rate"),
    DistributionKind.DIRICHLET: ("alpha",),
    DistributionKind.YULE: ("birthRate",),
    DistributionKind.BIRTH_DEATH: ("birthRate", "deathRate"),
    DistributionKind.COALESCENT: ("populationSize",),
    DistributionKind.PHYLO_CTMC: ("tree", "Q", "siteRates"),
    DistributionKind.DISCRETE_GAMMA: ("shape", "categories"),
    DistributionKind.DISCRETE_GAMMA_VECTOR: ("shape", "categories", "dimension"),
}

TREE_DISTRIBUTIONS = frozenset({
    DistributionKind.YULE,
    DistributionKind.BIRTH_DEATH,
    DistributionKind.COALESCENT,
})

DISCRETE_GAMMA_KINDS = frozenset({
    DistributionKind.DISCRETE_GAMMA,
    DistributionKind.DISCRETE_GAMMA_VECTOR,
})


def _require_numeric(param: Parameter, label: str) -> None:
    if isinstance(param, Primitive) and not param.is_numeric():
        raise error_invalid_parameter(f"{label} must be a number, found {param.describe()}")


def _check_positive(param: Parameter, label: str, allow_zero: bool = False) -> None:
    """Domain check for literal parameters; variables resolve lazily."""
    _require_numeric(param, label)
    if isinstance(param, Primitive):
        v = param.numeric_value()
        if v < 0 or (v == 0 and not allow_zero):
            bound = "non-negative" if allow_zero else "positive"
            raise error_invalid_parameter(f"{label} must be {bound}, found {format_raw(param.raw)}")


def count_value(param: Parameter, label: str) -> int:
    """A count parameter truncated to an integer; must be at least 1."""
    n = int(param.numeric_value())
    if n < 1:
        raise error_invalid_parameter(f"{label} must be at least 1, found {n}")
    return n


def _check_count(param: Parameter, label: str) -> None:
    _require_numeric(param, label)
    if isinstance(param, Primitive):
        count_value(param, label)


def _numeric_array(param: Parameter, label: str) -> Optional[List[float]]:
    """Numbers of a literal array parameter, or None for a variable."""
    if not isinstance(param, Primitive):
        return None
    if not param.is_array():
        raise error_invalid_parameter(f"{label} must be an array, found {param.describe()}")
    values = []
    for item in param.raw:
        if not is_number(item):
            raise error_invalid_parameter(f"{label} must contain only numbers, found {describe_raw(item)}")
        values.append(float(item))
    return values


def _check_positive_array(param: Parameter, label: str, length: Optional[int] = None) -> None:
    values = _numeric_array(param, label)
    if values is None:
        return
    if length is not None and len(values) != length:
        raise error_invalid_parameter(f"{label} must have {length} elements, found {len(values)}")
    if not values:
        raise error_invalid_parameter(f"{label} must not be empty")
    for v in values:
        if v <= 0:
            raise error_invalid_parameter(f"{label} must all be positive, found {v}")


SIMPLEX_TOLERANCE = 1e-10


def _check_frequencies(param: Parameter, label: str = "base frequencies") -> None:
    values = _numeric_array(param, label)
    if values is None:
        return
    if len(values) != 4:
        raise error_invalid_parameter(f"{label} must have 4 elements, found {len(values)}")
    for v in values:
        if v < 0 or v > 1:
            raise error_invalid_parameter(f"{label} must be between 0 and 1, found {v}")
    total = sum(values)
    if abs(total - 1.0) > SIMPLEX_TOLERANCE:
        raise error_invalid_parameter(f"{label} must sum to 1, found {total}")


def _validate_distribution(kind: DistributionKind, params: Tuple[Parameter, ...]) -> None:
    if kind in (DistributionKind.NORMAL, DistributionKind.LOGNORMAL):
        _require_numeric(params[0], "mean")
        _check_positive(params[1], "standard deviation")
    elif kind == DistributionKind.EXPONENTIAL:
        _check_positive(params[0], "rate")
    elif kind == DistributionKind.GAMMA:
        _check_positive(params[0], "shape")
        _check_positive(params[1], "rate")
    elif kind == DistributionKind.DIRICHLET:
        _check_positive_array(params[0], "concentration parameters")
    elif kind == DistributionKind.YULE:
        _check_positive(params[0], "birth rate")
    elif kind == DistributionKind.BIRTH_DEATH:
        _check_positive(params[0], "birth rate")
        _check_positive(params[1], "death rate", allow_zero=True)
    elif kind == DistributionKind.COALESCENT:
        _check_positive(params[0], "population size")
    elif kind == DistributionKind.PHYLO_CTMC:
        q = params[1]
        if not isinstance(model_of(q), Model):
            raise error_invalid_parameter(
                f"substitution model must be a model, found {q.describe()}"
            )
    elif kind in DISCRETE_GAMMA_KINDS:
        _check_positive(params[0], "shape")
        _check_count(params[1], "number of categories")
        if kind == DistributionKind.DISCRETE_GAMMA_VECTOR:
            _check_count(params[2], "dimension")


@dataclass(eq=False)
class Distribution(StackItem):
    """
    A probability law: a kind tag plus its ordered parameters.

    Parameters are validated when the distribution is constructed.
    Optional trailing parameters (PhyloCTMC siteRates) may be absent.
    """
    kind: DistributionKind
    parameters: Tuple[Any, ...]
    _rate_categories: Optional[List[float]] = field(default=None, init=False, repr=False)

    item_type = StackItemType.DISTRIBUTION

    def __post_init__(self):
        self.parameters = tuple(self.parameters)
        _validate_distribution(self.kind, self.parameters)

    @property
    def type_name(self) -> str:
        return self.kind.value

    @property
    def parameter_names(self) -> Tuple[str, ...]:
        return DISTRIBUTION_PARAMETERS[self.kind][:len(self.parameters)]

    def get(self, name: str) -> Optional[Any]:
        """Look up a parameter by its declared name."""
        names = self.parameter_names
        if name in names:
            return self.parameters[names.index(name)]
        return None

    def named_parameters(self) -> Dict[str, Any]:
        return dict(zip(self.parameter_names, self.parameters))

    @property
    def is_tree_prior(self) -> bool:
        return self.kind in TREE_DISTRIBUTIONS

    def rate_categories(self) -> List[float]:
        """
        Discrete gamma category rates, computed lazily.

        Uses a midpoint approximation of the category means,
        rate_i = shape * (1 + (mid_i - 0.5) * 2 / sqrt(shape)), then
        normalizes the rates to mean 1. This is not an inverse incomplete
        gamma computation.
        """
        if self.kind not in DISCRETE_GAMMA_KINDS:
            raise error_type_mismatch("discrete gamma distribution", self.describe())
        if self._rate_categories is None:
            alpha = self.parameters[0].numeric_value()
            n = count_value(self.parameters[1], "number of categories")
            rates = []
            for i in range(n):
                mid = (i + 0.5) / n
                rates.append(alpha * (1.0 + (mid - 0.5) * 2.0 / math.sqrt(alpha)))
            mean = sum(rates) / n
            self._rate_categories = [r / mean for r in rates]
        return list(self._rate_categories)

    def sample(self, sampler: "Sampler") -> Any:
        """Draw a stand-in value (see runtime.sampling)."""
        return sampler.sample(self)

    def describe(self) -> str:
        return f"distribution {self.kind.value}"

    def __str__(self) -> str:
        args = ", ".join(_format_param(p) for p in self.parameters)
        return f"{self.kind.value}({args})"


# =============================================================================
# Model
# =============================================================================

class ModelKind(Enum):
    """Substitution model tags."""
    HKY = "HKY"
    GTR = "GTR"


MODEL_PARAMETERS: Dict[ModelKind, Tuple[str, ...]] = {
    ModelKind.HKY: ("kappa", "frequencies"),
    ModelKind.GTR: ("rates", "frequencies"),
}


@dataclass(eq=False)
class Model(StackItem):
    """A substitution model, validated at construction."""
    kind: ModelKind
    parameters: Tuple[Any, ...]

    item_type = StackItemType.MODEL

    def __post_init__(self):
        self.parameters = tuple(self.parameters)
        if self.kind == ModelKind.HKY:
            _require_numeric(self.parameters[0], "kappa")
            if isinstance(self.parameters[1], Primitive) and not self.parameters[1].is_array():
                raise error_invalid_parameter(
                    f"base frequencies must be an array, found {self.parameters[1].describe()}"
                )
            _check_frequencies(self.parameters[1])
        elif self.kind == ModelKind.GTR:
            _check_positive_array(self.parameters[0], "GTR rates", length=6)
            _check_frequencies(self.parameters[1])

    @property
    def type_name(self) -> str:
        return self.kind.value

    @property
    def parameter_names(self) -> Tuple[str, ...]:
        return MODEL_PARAMETERS[self.kind]

    def get(self, name: str) -> Optional[Any]:
        names = self.parameter_names
        if name in names:
            return self.parameters[names.index(name)]
        return None

    def describe(self) -> str:
        return f"model {self.kind.value}"

    def __str__(self) -> str:
        args = ", ".join(_format_param(p) for p in self.parameters)
        return f"{self.kind.value}({args})"


def model_of(item: Any) -> Optional[Model]:
    """Resolve a Model directly or through a deterministic Variable."""
    if isinstance(item, Model):
        return item
    if isinstance(item, Variable) and not item.stochastic:
        return model_of(item.underlying)
    return None


def discrete_gamma_of(item: Any) -> Optional[Distribution]:
    """Resolve a discrete gamma distribution directly or through a Variable."""
    if isinstance(item, Distribution) and item.kind in DISCRETE_GAMMA_KINDS:
        return item
    if isinstance(item, Variable):
        return discrete_gamma_of(item.underlying)
    return None


# =============================================================================
# Sequence and Constraint
# =============================================================================

@dataclass
class Sequence(StackItem):
    """A taxon name with its residue string."""
    taxon: str
    residues: str

    item_type = StackItemType.SEQUENCE

    def __post_init__(self):
        if not self.taxon:
            raise error_invalid_parameter("taxon name must not be empty")
        if not self.residues:
            raise error_invalid_parameter(f"sequence for taxon '{self.taxon}' must not be empty")

    def __str__(self) -> str:
        return f"{self.taxon}: {self.residues}"


class ConstraintKind(Enum):
    """Constraint tags."""
    LESS_THAN = "lessThan"


@dataclass(eq=False)
class Constraint(StackItem):
    """A relation between parameters."""
    kind: ConstraintKind
    operands: Tuple[Any, ...]

    item_type = StackItemType.CONSTRAINT

    def __post_init__(self):
        self.operands = tuple(self.operands)

    def is_satisfied(self) -> bool:
        # lessThan is the only constraint kind
        left, right = self.operands
        return left.numeric_value() < right.numeric_value()

    def __str__(self) -> str:
        args = ", ".join(_format_param(p) for p in self.operands)
        return f"{self.kind.value}({args})"


# =============================================================================
# User Function
# =============================================================================

@dataclass(eq=False)
class UserFunction(StackItem):
    """A named operation list, stored once and re-executed per call."""
    name: str
    body: Tuple["Operation", ...]
    stack_effect: Optional[str] = None

    item_type = StackItemType.USER_FUNCTION

    def __post_init__(self):
        self.body = tuple(self.body)

    def __str__(self) -> str:
        effect = f" ( {self.stack_effect} )" if self.stack_effect else ""
        return f": {self.name}{effect} ... ;"


# =============================================================================
# Variable
# =============================================================================

class Variable(StackItem, Parameter):
    """
    A named node in the model graph.

    Stochastic variables wrap a Distribution and may later receive
    observed data. Deterministic variables wrap any stack item.
    """

    item_type = StackItemType.VARIABLE

    def __init__(self, name: str, underlying: StackItem, stochastic: bool,
                 sampler: Optional["Sampler"] = None):
        if not name:
            raise error_invalid_parameter("variable name must not be empty")
        if stochastic and not isinstance(underlying, Distribution):
            raise error_stochastic_requires_distribution(name, underlying.describe())
        self._name = name
        self.underlying = underlying
        self.stochastic = stochastic
        self.observed: Optional[StackItem] = None
        self.sampler = sampler

    @property
    def name(self) -> str:
        return self._name

    @property
    def distribution(self) -> Distribution:
        if not self.stochastic:
            raise error_type_mismatch("stochastic variable", f"deterministic variable '{self._name}'")
        return self.underlying

    @property
    def has_observed_data(self) -> bool:
        return self.observed is not None

    def observe(self, data: StackItem) -> None:
        """Attach observed data; only legal on stochastic variables."""
        if not self.stochastic:
            raise error_observe_deterministic(self._name)
        self.observed = data

    def value(self) -> Any:
        if self.observed is not None:
            return _resolve(self.observed)
        if self.stochastic:
            if self.sampler is None:
                from .sampling import Sampler
                self.sampler = Sampler()
            return self.underlying.sample(self.sampler)
        return _resolve(self.underlying)

    def describe(self) -> str:
        kind = "stochastic" if self.stochastic else "deterministic"
        return f"{kind} variable '{self._name}'"

    def __repr__(self) -> str:
        return f"Variable({self._name!r}, {self.underlying!r}, stochastic={self.stochastic})"

    def __str__(self) -> str:
        op = "~" if self.stochastic else "="
        return f"{self._name} {op} {self.underlying}"


def _resolve(item: Any) -> Any:
    """Unwrap nested Parameters to a terminal value."""
    if isinstance(item, Parameter):
        return item.value()
    return item


def _format_param(p: Any) -> str:
    if isinstance(p, Variable):
        return p.name
    return str(p)
