"""
Numerical kernels that fill distribution surfaces.

  quadrature.py    — factor nodes and conditional default probabilities
  lattice.py       — conditional loss distributions on a bucket lattice
  semi_analytic.py — quadrature kernel (per date, per node or averaged)
  monte_carlo.py   — latent default-time draws
  hull_white.py    — dynamic jump model for homogeneous pools
  counterparty.py  — losses counted while a counterparty survives

Kernels are pure functions of their inputs; baskets own the caching.
"""

from .quadrature import conditional_default_probabilities, factor_nodes
from .lattice import Lattice, conditional_distribution, level_values
from .semi_analytic import PoolAmounts, QuadratureKernel
from .monte_carlo import MonteCarloKernel, resolve_seed, sample_level_values
from .hull_white import JumpParameters, count_level_values, default_count_distribution

__all__ = [
    "conditional_default_probabilities",
    "factor_nodes",
    "Lattice",
    "conditional_distribution",
    "level_values",
    "PoolAmounts",
    "QuadratureKernel",
    "MonteCarloKernel",
    "resolve_seed",
    "sample_level_values",
    "JumpParameters",
    "count_level_values",
    "default_count_distribution",
]
