"""Fee and execution-cost estimation."""

from .model import BPS_DENOMINATOR, FeeEstimator, protocol_fee

__all__ = ["BPS_DENOMINATOR", "FeeEstimator", "protocol_fee"]
