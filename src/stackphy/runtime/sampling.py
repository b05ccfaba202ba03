"""
Sample generation for distributions.

Samples stand in for real inference machinery: they give stochastic
variables a concrete value when one is requested (for example when a
deterministic computation reads a stochastic parameter). They are drawn
from numpy's Generator so runs are reproducible under a fixed seed.
"""

from typing import Any, Optional

import numpy as np

from .values import Distribution, DistributionKind, DISCRETE_GAMMA_KINDS, count_value
from ..errors import error_unsupported_operation


class Sampler:
    """Draws stand-in values from distributions with a seedable generator."""

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self.rng = np.random.default_rng(seed)

    def reseed(self, seed: Optional[int] = None) -> None:
        self.seed = seed
        self.rng = np.random.default_rng(seed)

    def sample(self, dist: Distribution) -> Any:
        """Return a raw value (float or list of floats) drawn from dist."""
        kind = dist.kind
        p = dist.parameters

        if kind == DistributionKind.NORMAL:
            return float(self.rng.normal(p[0].numeric_value(), p[1].numeric_value()))
        if kind == DistributionKind.LOGNORMAL:
            return float(self.rng.lognormal(p[0].numeric_value(), p[1].numeric_value()))
        if kind == DistributionKind.EXPONENTIAL:
            return float(self.rng.exponential(1.0 / p[0].numeric_value()))
        if kind == DistributionKind.GAMMA:
            return float(self.rng.gamma(p[0].numeric_value(), 1.0 / p[1].numeric_value()))
        if kind == DistributionKind.DIRICHLET:
            alpha = [float(a) for a in p[0].array_value()]
            return [float(x) for x in self.rng.dirichlet(alpha)]
        if kind in DISCRETE_GAMMA_KINDS:
            rates = dist.rate_categories()
            if kind == DistributionKind.DISCRETE_GAMMA:
                return rates[int(self.rng.integers(len(rates)))]
            dim = count_value(p[2], "dimension")
            picks = self.rng.integers(len(rates), size=dim)
            return [rates[int(i)] for i in picks]

        # Trees and alignments have no stand-in representation
        raise error_unsupported_operation(f"sample {kind.value}")
