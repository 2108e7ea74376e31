"""Core infrastructure and utilities.

Responsibility: Provides foundational primitives (errors, logging, polling) used across
all provider modules.
"""

from .exceptions import (
    AlreadyExistsError,
    CompensationError,
    ConflictError,
    InsufficientCapacityError,
    InvalidInputError,
    NodeClaimNotFoundError,
    NotFoundError,
    ProviderError,
    ProvisioningError,
    QuantityParseError,
    UnclaimedUnitNotFoundError,
    is_conflict,
    is_insufficient_capacity,
    is_node_claim_not_found,
    is_not_found,
    wrap_error,
)
from .logging import claim_context, configure_logging, get_logger
from .polling import PollCancelledError, PollPolicy, PollTimeoutError, poll_until

__all__ = [
    "AlreadyExistsError",
    "CompensationError",
    "ConflictError",
    "InsufficientCapacityError",
    "InvalidInputError",
    "NodeClaimNotFoundError",
    "NotFoundError",
    "ProviderError",
    "ProvisioningError",
    "QuantityParseError",
    "UnclaimedUnitNotFoundError",
    "is_conflict",
    "is_insufficient_capacity",
    "is_node_claim_not_found",
    "is_not_found",
    "wrap_error",
    "claim_context",
    "configure_logging",
    "get_logger",
    "PollCancelledError",
    "PollPolicy",
    "PollTimeoutError",
    "poll_until",
]
