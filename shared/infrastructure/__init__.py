"""
Infrastructure helpers shared across the gateway.
"""

from shared.infrastructure.correlation import (
    CorrelationIdMiddleware,
    CorrelationIdFilter,
    bind_correlation_id,
    get_correlation_id,
    reset_correlation_id,
)

__all__ = [
    "CorrelationIdMiddleware",
    "CorrelationIdFilter",
    "bind_correlation_id",
    "get_correlation_id",
    "reset_correlation_id",
]
