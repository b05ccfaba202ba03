"""
Built-in operation registry for the stackphy interpreter.

Maps operation names to their stack behavior. Operations are grouped by
provider (stack manipulation, arithmetic, arrays, variable binding,
distributions, substitution models, rate heterogeneity, tree queries,
phylogenetic processes, sequence data and constraints) but the registry
itself is one flat table, looked up case-insensitively.

Every operation pops a fixed number of items in a fixed order (operands
are pushed left to right, so they are popped right to left), validates
them and pushes zero or one result. Operations that are recognized but
not implemented raise UnsupportedOperationError when executed.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .values import (
    StackItem, Primitive, PrimitiveKind, Parameter,
    Distribution, DistributionKind, Model, ModelKind,
    Sequence, Constraint, ConstraintKind,
    ARRAY_MARKER, int_val, float_val, array_val, discrete_gamma_of,
)
from .stack import Stack, duplicate
from .environment import Environment
from ..errors import (
    error_type_mismatch,
    error_division_by_zero,
    error_math_domain,
    error_index_out_of_range,
    error_missing_array_marker,
    error_observe_deterministic,
    error_stochastic_requires_distribution,
    error_unsupported_operation,
)


class OperationGroup(Enum):
    """Provider groups, used for organization and listings only."""
    STACK = "stack"
    MATH = "math"
    ARRAY = "array"
    VARIABLE = "variable"
    DISTRIBUTION = "distribution"
    SUBSTITUTION = "substitution"
    RATE_HETEROGENEITY = "rate-heterogeneity"
    TREE = "tree"
    PROCESS = "process"
    SEQUENCE = "sequence"
    CONSTRAINT = "constraint"


@dataclass
class BuiltinOperation:
    """
    A built-in operation with its implementation and documentation.
    """
    name: str
    group: OperationGroup
    implementation: Callable[[Stack, Environment], None]
    stack_effect: str = ""
    doc: str = ""
    supported: bool = True

    @property
    def key(self) -> str:
        return self.name.lower()

    def __call__(self, stack: Stack, env: Environment) -> None:
        self.implementation(stack, env)


# Operand kinds accepted by _pop_operands
NUMBER = "number"
ARRAY = "array"
ANY = "any"


def _pop_operands(stack: Stack, *kinds: str) -> List[StackItem]:
    """
    Pop len(kinds) operands, returned in push (declaration) order.

    All operands are checked before anything is popped, so a type error
    leaves the stack untouched.
    """
    stack.require(len(kinds))
    for depth, kind in enumerate(reversed(kinds)):
        item = stack.peek(depth)
        if kind == ANY:
            if item is ARRAY_MARKER:
                raise error_type_mismatch("value", item.describe())
            continue
        if not isinstance(item, Parameter):
            raise error_type_mismatch(f"{kind} parameter", item.describe())
        if isinstance(item, Primitive):
            if kind == NUMBER and not item.is_numeric():
                raise error_type_mismatch("number", item.describe())
            if kind == ARRAY and not item.is_array():
                raise error_type_mismatch("array", item.describe())
    operands = [stack.pop() for _ in kinds]
    operands.reverse()
    return operands


def _pop_numbers(stack: Stack, count: int) -> List[Primitive]:
    """Pop numeric Primitives (no variables), in push order."""
    stack.require(count)
    for depth in range(count):
        item = stack.peek(depth)
        if not (isinstance(item, Primitive) and item.is_numeric()):
            raise error_type_mismatch("number", item.describe())
    operands = [stack.pop() for _ in range(count)]
    operands.reverse()
    return operands


def _push_number(stack: Stack, value: float, *operands: Primitive) -> None:
    """Push the result of integer-preserving arithmetic."""
    if all(op.kind == PrimitiveKind.INTEGER for op in operands) and isinstance(value, int):
        try:
            float(value)
        except OverflowError:
            for op in operands:
                stack.push(op)
            raise error_math_domain("integer result exceeds the range of a double") from None
        stack.push(int_val(value))
    else:
        stack.push(float_val(value))


class OperationRegistry:
    """
    Registry of all built-in operations.

    Operations are registered by name and looked up case-insensitively.
    """

    def __init__(self):
        self._operations: Dict[str, BuiltinOperation] = {}
        self._register_all()

    def lookup(self, name: str) -> Optional[BuiltinOperation]:
        """Look up an operation by name, ignoring case."""
        return self._operations.get(name.lower())

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._operations

    def __len__(self) -> int:
        return len(self._operations)

    def operations(self, group: Optional[OperationGroup] = None) -> List[BuiltinOperation]:
        """All registered operations, optionally filtered by group."""
        ops = list(self._operations.values())
        if group is not None:
            ops = [op for op in ops if op.group == group]
        return ops

    def register(self, op: BuiltinOperation) -> None:
        """Register an operation."""
        self._operations[op.key] = op

    def _register_unsupported(self, group: OperationGroup, names: Iterable[str], doc: str) -> None:
        """Register recognized operations that fail when executed."""
        for name in names:
            def _unsupported(stack: Stack, env: Environment, _name: str = name) -> None:
                raise error_unsupported_operation(_name)

            self.register(BuiltinOperation(name, group, _unsupported, doc=doc, supported=False))

    def _register_all(self) -> None:
        """Register all built-in operations."""
        self._register_stack_operations()
        self._register_math_operations()
        self._register_array_operations()
        self._register_variable_operations()
        self._register_distribution_operations()
        self._register_substitution_operations()
        self._register_rate_heterogeneity_operations()
        self._register_tree_operations()
        self._register_process_operations()
        self._register_sequence_operations()
        self._register_constraint_operations()

    # --- Stack Manipulation ---

    def _register_stack_operations(self) -> None:
        """Register pure stack shape transforms."""
        g = OperationGroup.STACK

        def _dup(stack: Stack, env: Environment) -> None:
            stack.push(duplicate(stack.peek()))

        def _swap(stack: Stack, env: Environment) -> None:
            stack.require(2)
            b = stack.pop()
            a = stack.pop()
            stack.push(b)
            stack.push(a)

        def _drop(stack: Stack, env: Environment) -> None:
            stack.pop()

        def _over(stack: Stack, env: Environment) -> None:
            stack.push(duplicate(stack.peek(1)))

        def _rot(stack: Stack, env: Environment) -> None:
            stack.require(3)
            c = stack.pop()
            b = stack.pop()
            a = stack.pop()
            stack.push(b)
            stack.push(c)
            stack.push(a)

        def _nip(stack: Stack, env: Environment) -> None:
            stack.require(2)
            b = stack.pop()
            stack.pop()
            stack.push(b)

        def _tuck(stack: Stack, env: Environment) -> None:
            stack.require(2)
            b = stack.pop()
            a = stack.pop()
            stack.push(duplicate(b))
            stack.push(a)
            stack.push(b)

        def _pick(stack: Stack, env: Environment) -> None:
            index_item = stack.peek()
            n = stack.pop_index()
            if n < 0 or n >= stack.size():
                stack.push(index_item)
                raise error_index_out_of_range(n, stack.size() - 1)
            stack.push(duplicate(stack.peek(n)))

        self.register(BuiltinOperation("dup", g, _dup, "( a -- a a )", "Duplicate the top item."))
        self.register(BuiltinOperation("swap", g, _swap, "( a b -- b a )", "Exchange the top two items."))
        self.register(BuiltinOperation("drop", g, _drop, "( a -- )", "Discard the top item."))
        self.register(BuiltinOperation("over", g, _over, "( a b -- a b a )", "Copy the second item to the top."))
        self.register(BuiltinOperation("rot", g, _rot, "( a b c -- b c a )", "Rotate the third item to the top."))
        self.register(BuiltinOperation("nip", g, _nip, "( a b -- b )", "Discard the second item."))
        self.register(BuiltinOperation("tuck", g, _tuck, "( a b -- b a b )", "Copy the top item below the second."))
        self.register(BuiltinOperation(
            "pick", g, _pick, "( xn ... x0 n -- xn ... x0 xn )",
            "Copy the item n below the top; 0 pick is dup.",
        ))

    # --- Arithmetic ---

    def _register_math_operations(self) -> None:
        """Register arithmetic on numeric primitives."""
        g = OperationGroup.MATH

        def _add(stack: Stack, env: Environment) -> None:
            a, b = _pop_numbers(stack, 2)
            _push_number(stack, a.raw + b.raw, a, b)

        def _sub(stack: Stack, env: Environment) -> None:
            a, b = _pop_numbers(stack, 2)
            _push_number(stack, a.raw - b.raw, a, b)

        def _mul(stack: Stack, env: Environment) -> None:
            a, b = _pop_numbers(stack, 2)
            _push_number(stack, a.raw * b.raw, a, b)

        def _div(stack: Stack, env: Environment) -> None:
            stack.require(2)
            divisor = stack.peek()
            if isinstance(divisor, Primitive) and divisor.is_numeric() and divisor.raw == 0:
                raise error_division_by_zero()
            a, b = _pop_numbers(stack, 2)
            stack.push(float_val(a.raw / b.raw))

        def _negate(stack: Stack, env: Environment) -> None:
            (a,) = _pop_numbers(stack, 1)
            _push_number(stack, -a.raw, a)

        def _sqrt(stack: Stack, env: Environment) -> None:
            (a,) = _pop_numbers(stack, 1)
            if a.raw < 0:
                stack.push(a)
                raise error_math_domain(f"square root of negative number {a.raw}")
            stack.push(float_val(math.sqrt(a.raw)))

        def _exp(stack: Stack, env: Environment) -> None:
            (a,) = _pop_numbers(stack, 1)
            try:
                stack.push(float_val(math.exp(a.raw)))
            except OverflowError:
                stack.push(a)
                raise error_math_domain(f"exp({a.raw}) overflows") from None

        def _log(stack: Stack, env: Environment) -> None:
            (a,) = _pop_numbers(stack, 1)
            if a.raw <= 0:
                stack.push(a)
                raise error_math_domain(f"logarithm of non-positive number {a.raw}")
            stack.push(float_val(math.log(a.raw)))

        def _pi(stack: Stack, env: Environment) -> None:
            stack.push(float_val(math.pi))

        self.register(BuiltinOperation("+", g, _add, "( a b -- a+b )", "Add."))
        self.register(BuiltinOperation("-", g, _sub, "( a b -- a-b )", "Subtract."))
        self.register(BuiltinOperation("*", g, _mul, "( a b -- a*b )", "Multiply."))
        self.register(BuiltinOperation("/", g, _div, "( a b -- a/b )", "Divide; fails on a zero divisor."))
        self.register(BuiltinOperation("negate", g, _negate, "( a -- -a )", "Change sign."))
        self.register(BuiltinOperation("sqrt", g, _sqrt, "( a -- sqrt(a) )", "Square root; fails on negative input."))
        self.register(BuiltinOperation("exp", g, _exp, "( a -- e^a )", "Exponential."))
        self.register(BuiltinOperation("log", g, _log, "( a -- ln(a) )", "Natural logarithm; fails on non-positive input."))
        self.register(BuiltinOperation("pi", g, _pi, "( -- pi )", "Push the constant pi."))

    # --- Arrays ---

    def _register_array_operations(self) -> None:
        """Register array construction ('[' is a literal marker push)."""
        g = OperationGroup.ARRAY

        def _close_array(stack: Stack, env: Environment) -> None:
            items = stack.items()
            marker_at = None
            for i in range(len(items) - 1, -1, -1):
                if items[i] is ARRAY_MARKER:
                    marker_at = i
                    break
            if marker_at is None:
                raise error_missing_array_marker()
            captured = [stack.pop() for _ in range(len(items) - marker_at - 1)]
            stack.pop()  # the marker
            captured.reverse()
            stack.push(array_val(
                item.raw if isinstance(item, Primitive) else item for item in captured
            ))

        self.register(BuiltinOperation(
            "]", g, _close_array, "( [ a b ... -- array )",
            "Collect items back to the array marker into one array value.",
        ))

    # --- Variable Binding ---

    def _register_variable_operations(self) -> None:
        """Register naming, lookup and observation."""
        g = OperationGroup.VARIABLE

        def _stochastic(stack: Stack, env: Environment) -> None:
            stack.require(2)
            name = stack.pop_string()
            value = stack.pop()
            if not isinstance(value, Distribution):
                raise error_stochastic_requires_distribution(name, value.describe())
            env.define_variable(name, value, stochastic=True)

        def _deterministic(stack: Stack, env: Environment) -> None:
            stack.require(2)
            name = stack.pop_string()
            value = stack.pop()
            if value is ARRAY_MARKER:
                raise error_type_mismatch("value", value.describe())
            env.define_variable(name, value, stochastic=False)

        def _var(stack: Stack, env: Environment) -> None:
            name = stack.pop_string()
            stack.push(env.get_variable(name))

        def _observe(stack: Stack, env: Environment) -> None:
            name = stack.pop_string()
            variable = env.get_variable(name)
            if not variable.stochastic:
                raise error_observe_deterministic(name)
            data = stack.pop()
            variable.observe(data)

        self.register(BuiltinOperation(
            "~", g, _stochastic, "( dist name -- )", "Bind a stochastic variable.",
        ))
        self.register(BuiltinOperation(
            "=", g, _deterministic, "( value name -- )", "Bind a deterministic variable.",
        ))
        self.register(BuiltinOperation(
            "var", g, _var, "( name -- variable )", "Push a previously bound variable.",
        ))
        self.register(BuiltinOperation(
            "observe", g, _observe, "( data name -- )", "Attach observed data to a stochastic variable.",
        ))

    # --- Distributions ---

    def _distribution(self, name: str, kind: DistributionKind, operands: Tuple[str, ...],
                      group: OperationGroup, stack_effect: str, doc: str) -> None:
        def _construct(stack: Stack, env: Environment) -> None:
            params = _pop_operands(stack, *operands)
            stack.push(Distribution(kind, params))

        self.register(BuiltinOperation(name, group, _construct, stack_effect, doc))

    def _register_distribution_operations(self) -> None:
        """Register continuous distributions and tree priors."""
        g = OperationGroup.DISTRIBUTION

        self._distribution("Normal", DistributionKind.NORMAL, (NUMBER, NUMBER), g,
                           "( mean sd -- dist )", "Normal distribution; sd > 0.")
        self._distribution("LogNormal", DistributionKind.LOGNORMAL, (NUMBER, NUMBER), g,
                           "( meanlog sdlog -- dist )", "Log-normal distribution; sdlog > 0.")
        self._distribution("Exponential", DistributionKind.EXPONENTIAL, (NUMBER,), g,
                           "( rate -- dist )", "Exponential distribution; rate > 0.")
        self._distribution("Gamma", DistributionKind.GAMMA, (NUMBER, NUMBER), g,
                           "( shape rate -- dist )", "Gamma distribution; shape, rate > 0.")
        self._distribution("Dirichlet", DistributionKind.DIRICHLET, (ARRAY,), g,
                           "( alpha -- dist )", "Dirichlet distribution; concentrations > 0.")
        self._distribution("Yule", DistributionKind.YULE, (NUMBER,), g,
                           "( birthRate -- dist )", "Yule tree prior; birth rate > 0.")
        self._distribution("BirthDeath", DistributionKind.BIRTH_DEATH, (NUMBER, NUMBER), g,
                           "( birthRate deathRate -- dist )",
                           "Birth-death tree prior; birth > 0, death >= 0.")
        self._distribution("Coalescent", DistributionKind.COALESCENT, (NUMBER,), g,
                           "( populationSize -- dist )", "Coalescent tree prior; size > 0.")

        self._register_unsupported(g, ("Beta", "Uniform", "FossilBirthDeath"),
                                   "Declared distribution without an implementation.")

    # --- Substitution Models ---

    def _register_substitution_operations(self) -> None:
        """Register nucleotide and amino-acid substitution models."""
        g = OperationGroup.SUBSTITUTION

        def _hky(stack: Stack, env: Environment) -> None:
            kappa, freqs = _pop_operands(stack, NUMBER, ARRAY)
            stack.push(Model(ModelKind.HKY, (kappa, freqs)))

        def _gtr(stack: Stack, env: Environment) -> None:
            rates, freqs = _pop_operands(stack, ARRAY, ARRAY)
            stack.push(Model(ModelKind.GTR, (rates, freqs)))

        self.register(BuiltinOperation(
            "HKY", g, _hky, "( kappa freqs -- Q )",
            "HKY model; freqs is a 4-element simplex.",
        ))
        self.register(BuiltinOperation(
            "GTR", g, _gtr, "( rates freqs -- Q )",
            "GTR model; 6 positive rates and a 4-element frequency simplex.",
        ))
        self._register_unsupported(g, ("JC69", "K80", "F81", "WAG", "JTT", "LG", "GY94"),
                                   "Declared substitution model without an implementation.")

    # --- Rate Heterogeneity ---

    def _register_rate_heterogeneity_operations(self) -> None:
        """Register among-site and among-branch rate variation."""
        g = OperationGroup.RATE_HETEROGENEITY

        self._distribution("DiscreteGamma", DistributionKind.DISCRETE_GAMMA, (NUMBER, NUMBER), g,
                           "( shape categories -- dist )",
                           "Discrete gamma site rates; shape, categories > 0.")
        self._distribution("DiscreteGammaVector", DistributionKind.DISCRETE_GAMMA_VECTOR,
                           (NUMBER, NUMBER, NUMBER), g,
                           "( shape categories dimension -- dist )",
                           "Vector of discrete gamma site rates; all arguments > 0.")
        self._register_unsupported(
            g,
            ("FreeRates", "InvariantSites", "StrictClock", "UncorrelatedLognormal",
             "UncorrelatedExponential", "Mixture", "DiscreteGammaMixture"),
            "Declared rate model without an implementation.",
        )

    # --- Tree Queries ---

    def _register_tree_operations(self) -> None:
        """Register tree queries (declared only)."""
        self._register_unsupported(
            OperationGroup.TREE,
            ("mrca", "treeHeight", "nodeAge", "branchLength", "distanceMatrix", "descendantTaxa"),
            "Tree query; tree algorithms are not implemented.",
        )

    # --- Phylogenetic Processes ---

    def _register_process_operations(self) -> None:
        """Register processes that generate data along a tree."""
        g = OperationGroup.PROCESS

        def _phylo_ctmc(stack: Stack, env: Environment) -> None:
            if stack.size() >= 3 and discrete_gamma_of(stack.peek()) is not None:
                params = _pop_operands(stack, ANY, ANY, ANY)
            else:
                params = _pop_operands(stack, ANY, ANY)
            stack.push(Distribution(DistributionKind.PHYLO_CTMC, params))

        self.register(BuiltinOperation(
            "PhyloCTMC", g, _phylo_ctmc, "( tree Q [siteRates] -- dist )",
            "Continuous-time Markov chain along a tree; site rates are optional.",
        ))
        self._register_unsupported(g, ("PhyloBM", "PhyloOU"),
                                   "Declared continuous-trait process without an implementation.")

    # --- Sequence Data ---

    def _register_sequence_operations(self) -> None:
        """Register sequence data construction."""
        g = OperationGroup.SEQUENCE

        def _sequence(stack: Stack, env: Environment) -> None:
            stack.require(2)
            for depth in (0, 1):
                item = stack.peek(depth)
                if not (isinstance(item, Primitive) and item.is_string()):
                    raise error_type_mismatch("string", item.describe())
            residues = stack.pop_string()
            taxon = stack.pop_string()
            stack.push(Sequence(taxon, residues))

        self.register(BuiltinOperation(
            "sequence", g, _sequence, "( taxon residues -- seq )",
            "A taxon name with its residue string.",
        ))
        self._register_unsupported(g, ("alignment",), "Declared alignment constructor without an implementation.")

    # --- Constraints ---

    def _register_constraint_operations(self) -> None:
        """Register relations between parameters."""
        g = OperationGroup.CONSTRAINT

        def _less_than(stack: Stack, env: Environment) -> None:
            left, right = _pop_operands(stack, NUMBER, NUMBER)
            stack.push(Constraint(ConstraintKind.LESS_THAN, (left, right)))

        self.register(BuiltinOperation(
            "lessThan", g, _less_than, "( a b -- constraint )", "Constrain a < b.",
        ))
        self._register_unsupported(
            g,
            ("greaterThan", "equals", "bounded", "sumTo", "monophyly", "calibration",
             "vectorElement", "matrixElement"),
            "Declared constraint without an implementation.",
        )


# Shared registry used by the parser for name resolution
_registry: Optional[OperationRegistry] = None


def get_operation_registry() -> OperationRegistry:
    """Get the shared operation registry."""
    global _registry
    if _registry is None:
        _registry = OperationRegistry()
    return _registry
