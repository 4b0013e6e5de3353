"""
Tranche product and pricer consuming a basket distribution.
"""

from .product import SyntheticCDO
from .pricer import TranchePricer

__all__ = ["SyntheticCDO", "TranchePricer"]
