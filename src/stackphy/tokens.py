"""
Token types for the stackphy lexer.

Token type categories follow the diagnostic code ranges:
- E0xx: Lexer errors
- E1xx: Parser errors
- E4xx: Execution errors
"""

from enum import Enum, auto
from dataclasses import dataclass
from typing import Any, Optional


class TokenType(Enum):
    """All token types recognized by the stackphy lexer."""

    # --- Literals ---
    NUMBER = auto()             # 42, -1.5, .5, 1e-9
    STRING = auto()             # "taxon_A"

    # --- Identifiers ---
    IDENTIFIER = auto()         # user function names

    # --- Delimiters ---
    LBRACKET = auto()           # [
    RBRACKET = auto()           # ]
    LPAREN = auto()             # ( (stack-effect comment start)
    RPAREN = auto()             # )
    COMMA = auto()              # ,
    FUNCTION_START = auto()     # :
    FUNCTION_END = auto()       # ;

    # --- Operator symbols ---
    TILDE = auto()              # ~ (stochastic bind)
    EQUAL = auto()              # = (deterministic bind)
    PLUS = auto()               # +
    MINUS = auto()              # -
    STAR = auto()               # *
    SLASH = auto()              # /

    # --- Keywords: stack manipulation ---
    DUP = auto()                # dup
    SWAP = auto()               # swap
    DROP = auto()               # drop
    ROT = auto()                # rot
    OVER = auto()               # over
    PICK = auto()               # pick
    NIP = auto()                # nip
    TUCK = auto()               # tuck

    # --- Keywords: arithmetic ---
    NEGATE = auto()             # negate
    SQRT = auto()               # sqrt
    EXP = auto()                # exp
    LOG = auto()                # log
    PI = auto()                 # pi
    SCALE = auto()              # scale (reserved)
    NORMALIZE = auto()          # normalize (reserved)
    SUM = auto()                # sum (reserved)
    PRODUCT = auto()            # product (reserved)

    # --- Keywords: variables ---
    VAR = auto()                # var
    OBSERVE = auto()            # observe
    CONSTRAINT = auto()         # constraint (reserved)

    # --- Keywords: distributions ---
    NORMAL = auto()             # Normal
    LOGNORMAL = auto()          # LogNormal
    EXPONENTIAL = auto()        # Exponential
    GAMMA = auto()              # Gamma
    BETA = auto()               # Beta
    DIRICHLET = auto()          # Dirichlet
    UNIFORM = auto()            # Uniform

    # --- Keywords: tree priors ---
    YULE = auto()               # Yule
    BIRTH_DEATH = auto()        # BirthDeath
    COALESCENT = auto()         # Coalescent
    FOSSIL_BIRTH_DEATH = auto() # FossilBirthDeath

    # --- Keywords: substitution models ---
    JC69 = auto()               # JC69
    K80 = auto()                # K80
    F81 = auto()                # F81
    HKY = auto()                # HKY
    GTR = auto()                # GTR
    WAG = auto()                # WAG
    JTT = auto()                # JTT
    LG = auto()                 # LG
    GY94 = auto()               # GY94

    # --- Keywords: rate heterogeneity ---
    DISCRETE_GAMMA = auto()             # DiscreteGamma
    DISCRETE_GAMMA_VECTOR = auto()      # DiscreteGammaVector
    FREE_RATES = auto()                 # FreeRates
    INVARIANT_SITES = auto()            # InvariantSites
    STRICT_CLOCK = auto()               # StrictClock
    UNCORRELATED_LOGNORMAL = auto()     # UncorrelatedLognormal
    UNCORRELATED_EXPONENTIAL = auto()   # UncorrelatedExponential
    MIXTURE = auto()                    # Mixture
    DISCRETE_GAMMA_MIXTURE = auto()     # DiscreteGammaMixture

    # --- Keywords: tree queries ---
    MRCA = auto()               # mrca
    TREE_HEIGHT = auto()        # treeHeight
    NODE_AGE = auto()           # nodeAge
    BRANCH_LENGTH = auto()      # branchLength
    DISTANCE_MATRIX = auto()    # distanceMatrix
    DESCENDANT_TAXA = auto()    # descendantTaxa

    # --- Keywords: phylogenetic processes ---
    PHYLO_CTMC = auto()         # PhyloCTMC
    PHYLO_BM = auto()           # PhyloBM
    PHYLO_OU = auto()           # PhyloOU

    # --- Keywords: sequence data ---
    SEQUENCE = auto()           # sequence
    ALIGNMENT = auto()          # alignment

    # --- Keywords: constraints ---
    LESS_THAN = auto()          # lessThan / LessThan
    GREATER_THAN = auto()       # greaterThan / GreaterThan
    EQUALS = auto()             # equals / Equals
    BOUNDED = auto()            # bounded / Bounded
    SUM_TO = auto()             # sumTo / SumTo
    MONOPHYLY = auto()          # monophyly / Monophyly
    CALIBRATION = auto()        # calibration / Calibration
    VECTOR_ELEMENT = auto()     # vectorElement
    MATRIX_ELEMENT = auto()     # matrixElement

    # --- Special ---
    ERROR = auto()              # malformed input, carries a diagnostic
    EOF = auto()                # end of file


@dataclass(frozen=True)
class SourceLocation:
    """Represents a position in source code."""
    line: int           # 1-indexed line number
    column: int         # 1-indexed column number
    offset: int         # 0-indexed character offset from start
    filename: Optional[str] = None

    def __str__(self) -> str:
        if self.filename:
            return f"{self.filename}:{self.line}:{self.column}"
        return f"{self.line}:{self.column}"


@dataclass(frozen=True)
class SourceSpan:
    """Represents a range in source code."""
    start: SourceLocation
    end: SourceLocation

    def __str__(self) -> str:
        if self.start.filename:
            return f"{self.start.filename}:{self.start.line}:{self.start.column}-{self.end.line}:{self.end.column}"
        return f"{self.start.line}:{self.start.column}-{self.end.line}:{self.end.column}"


@dataclass(frozen=True)
class Token:
    """A single token from the lexer."""
    type: TokenType
    value: Any              # int/float for numbers, str otherwise, Diagnostic for ERROR
    lexeme: str             # The original source text
    span: SourceSpan        # Location in source

    @property
    def line(self) -> int:
        return self.span.start.line

    @property
    def column(self) -> int:
        return self.span.start.column

    def __str__(self) -> str:
        if self.type in (TokenType.NUMBER, TokenType.STRING, TokenType.IDENTIFIER):
            return f"{self.type.name}({self.value!r})"
        return self.type.name

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.lexeme!r}, {self.span.start})"


# Keyword mapping; the keyword set is case-sensitive
KEYWORDS: dict[str, TokenType] = {
    # Stack manipulation
    "dup": TokenType.DUP,
    "swap": TokenType.SWAP,
    "drop": TokenType.DROP,
    "rot": TokenType.ROT,
    "over": TokenType.OVER,
    "pick": TokenType.PICK,
    "nip": TokenType.NIP,
    "tuck": TokenType.TUCK,

    # Arithmetic
    "negate": TokenType.NEGATE,
    "sqrt": TokenType.SQRT,
    "exp": TokenType.EXP,
    "log": TokenType.LOG,
    "pi": TokenType.PI,
    "scale": TokenType.SCALE,
    "normalize": TokenType.NORMALIZE,
    "sum": TokenType.SUM,
    "product": TokenType.PRODUCT,

    # Variables
    "var": TokenType.VAR,
    "observe": TokenType.OBSERVE,
    "constraint": TokenType.CONSTRAINT,

    # Distributions
    "Normal": TokenType.NORMAL,
    "LogNormal": TokenType.LOGNORMAL,
    "Exponential": TokenType.EXPONENTIAL,
    "Gamma": TokenType.GAMMA,
    "Beta": TokenType.BETA,
    "Dirichlet": TokenType.DIRICHLET,
    "Uniform": TokenType.UNIFORM,

    # Tree priors
    "Yule": TokenType.YULE,
    "BirthDeath": TokenType.BIRTH_DEATH,
    "Coalescent": TokenType.COALESCENT,
    "FossilBirthDeath": TokenType.FOSSIL_BIRTH_DEATH,

    # Substitution models
    "JC69": TokenType.JC69,
    "K80": TokenType.K80,
    "F81": TokenType.F81,
    "HKY": TokenType.HKY,
    "GTR": TokenType.GTR,
    "WAG": TokenType.WAG,
    "JTT": TokenType.JTT,
    "LG": TokenType.LG,
    "GY94": TokenType.GY94,

    # Rate heterogeneity
    "DiscreteGamma": TokenType.DISCRETE_GAMMA,
    "DiscreteGammaVector": TokenType.DISCRETE_GAMMA_VECTOR,
    "FreeRates": TokenType.FREE_RATES,
    "InvariantSites": TokenType.INVARIANT_SITES,
    "StrictClock": TokenType.STRICT_CLOCK,
    "UncorrelatedLognormal": TokenType.UNCORRELATED_LOGNORMAL,
    "UncorrelatedExponential": TokenType.UNCORRELATED_EXPONENTIAL,
    "Mixture": TokenType.MIXTURE,
    "DiscreteGammaMixture": TokenType.DISCRETE_GAMMA_MIXTURE,

    # Tree queries
    "mrca": TokenType.MRCA,
    "treeHeight": TokenType.TREE_HEIGHT,
    "nodeAge": TokenType.NODE_AGE,
    "branchLength": TokenType.BRANCH_LENGTH,
    "distanceMatrix": TokenType.DISTANCE_MATRIX,
    "descendantTaxa": TokenType.DESCENDANT_TAXA,

    # Phylogenetic processes
    "PhyloCTMC": TokenType.PHYLO_CTMC,
    "PhyloBM": TokenType.PHYLO_BM,
    "PhyloOU": TokenType.PHYLO_OU,

    # Sequence data
    "sequence": TokenType.SEQUENCE,
    "alignment": TokenType.ALIGNMENT,

    # Constraints (both spellings are accepted)
    "lessThan": TokenType.LESS_THAN,
    "LessThan": TokenType.LESS_THAN,
    "greaterThan": TokenType.GREATER_THAN,
    "GreaterThan": TokenType.GREATER_THAN,
    "equals": TokenType.EQUALS,
    "Equals": TokenType.EQUALS,
    "bounded": TokenType.BOUNDED,
    "Bounded": TokenType.BOUNDED,
    "sumTo": TokenType.SUM_TO,
    "SumTo": TokenType.SUM_TO,
    "monophyly": TokenType.MONOPHYLY,
    "Monophyly": TokenType.MONOPHYLY,
    "calibration": TokenType.CALIBRATION,
    "Calibration": TokenType.CALIBRATION,
    "vectorElement": TokenType.VECTOR_ELEMENT,
    "matrixElement": TokenType.MATRIX_ELEMENT,
}


# Operator symbols that dispatch to a named registry operation
OPERATOR_SYMBOLS: dict[TokenType, str] = {
    TokenType.RBRACKET: "]",
    TokenType.TILDE: "~",
    TokenType.EQUAL: "=",
    TokenType.PLUS: "+",
    TokenType.MINUS: "-",
    TokenType.STAR: "*",
    TokenType.SLASH: "/",
}


def is_keyword_token(token_type: TokenType) -> bool:
    """Check if a token type represents a keyword."""
    return token_type in _KEYWORD_TYPES


def is_operation_token(token_type: TokenType) -> bool:
    """Check if a token names a registry operation (keyword or operator symbol)."""
    return token_type in _KEYWORD_TYPES or token_type in OPERATOR_SYMBOLS


_KEYWORD_TYPES = frozenset(KEYWORDS.values())
