"""Common exception hierarchy used across the provider."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(eq=False)
class ProviderError(RuntimeError):
    message: str
    code: str = "provider_error"
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "metadata": self.metadata}

    def with_context(self, context: str) -> "ProviderError":
        """Return a copy of this error of the same class, its message prefixed with ``context``."""
        wrapped = self.__class__.__new__(self.__class__)
        wrapped.__dict__.update(self.__dict__)
        wrapped.message = f"{context}: {self.message}"
        wrapped.metadata = dict(self.metadata)
        Exception.__init__(wrapped, wrapped.message)
        return wrapped


@dataclass(eq=False)
class InvalidInputError(ProviderError):
    """Nil or empty required input; nothing was mutated."""

    code: str = "invalid_input"


@dataclass(eq=False)
class NotFoundError(ProviderError):
    """An object is missing from the object store."""

    code: str = "not_found"


@dataclass(eq=False)
class ConflictError(ProviderError):
    """Optimistic-concurrency failure on write."""

    code: str = "conflict"


@dataclass(eq=False)
class AlreadyExistsError(ProviderError):
    code: str = "already_exists"


@dataclass(eq=False)
class NodeClaimNotFoundError(ProviderError):
    """The unit backing a claim is gone; callers may treat the claim as deleted."""

    code: str = "node_claim_not_found"


@dataclass(eq=False)
class InsufficientCapacityError(ProviderError):
    """No eligible group can satisfy the claim right now; retry later."""

    code: str = "insufficient_capacity"


@dataclass(eq=False)
class ProvisioningError(ProviderError):
    code: str = "provisioning_failed"


@dataclass(eq=False)
class UnclaimedUnitNotFoundError(ProvisioningError):
    code: str = "unclaimed_unit_not_found"


@dataclass(eq=False)
class QuantityParseError(ProviderError, ValueError):
    code: str = "invalid_quantity"


class CompensationError(ProviderError):
    """A rollback or cleanup step failed after a primary failure.

    The system is left in a partially applied state that needs operator
    attention, so both failures are carried and named in the message.
    """

    def __init__(
        self,
        message: str,
        *,
        primary: BaseException,
        cleanup: BaseException,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.primary = primary
        self.cleanup = cleanup
        full = f"{message}: primary failure: {primary}; cleanup also failed: {cleanup}"
        super().__init__(full, "compensation_failed", dict(metadata or {}))


def _iter_chain(err: Optional[BaseException]):
    seen = set()
    while err is not None and id(err) not in seen:
        seen.add(id(err))
        yield err
        err = err.__cause__ or err.__context__


def is_node_claim_not_found(err: BaseException) -> bool:
    return any(isinstance(e, NodeClaimNotFoundError) for e in _iter_chain(err))


def is_insufficient_capacity(err: BaseException) -> bool:
    return any(isinstance(e, InsufficientCapacityError) for e in _iter_chain(err))


def is_not_found(err: BaseException) -> bool:
    return any(isinstance(e, NotFoundError) for e in _iter_chain(err))


def is_conflict(err: BaseException) -> bool:
    return any(isinstance(e, ConflictError) for e in _iter_chain(err))


def wrap_error(err: BaseException, context: str) -> ProviderError:
    """Name the object being acted on without losing the error kind."""
    if isinstance(err, ProviderError):
        return err.with_context(context)
    return ProviderError(f"{context}: {err}")
