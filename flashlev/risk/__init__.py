"""Risk management module.

Position-size limit and affordability gate run before every loan.
"""

from .limits import GateResult, RiskGate

__all__ = [
    "GateResult",
    "RiskGate",
]
