from __future__ import annotations


class DeliveryError(Exception):
    """Base class for delivery engine errors."""


class InvalidStateError(DeliveryError):
    def __init__(self, action: str, current_status: str) -> None:
        super().__init__(f"Cannot {action} an order in status {current_status}")
        self.action = action
        self.current_status = current_status


class ForbiddenError(DeliveryError):
    def __init__(self, action: str, role: str) -> None:
        super().__init__(f"Role {role} is not permitted to {action}")
        self.action = action
        self.role = role


class NotFoundError(DeliveryError):
    def __init__(self, resource: str, resource_id: str) -> None:
        super().__init__(f"{resource} not found")
        self.resource = resource
        self.resource_id = resource_id


class RateLimitedError(DeliveryError):
    def __init__(self, message: str, *, limit: int, reset_at_ms: int, retry_after_s: int) -> None:
        super().__init__(message)
        self.limit = limit
        self.reset_at_ms = reset_at_ms
        self.retry_after_s = retry_after_s


class DispatchFailure(DeliveryError):
    """Network-level failure talking to an analytics endpoint."""

    def __init__(self, sink: str, reason: str) -> None:
        super().__init__(f"{sink} dispatch failed: {reason}")
        self.sink = sink
        self.reason = reason


class LedgerUnavailableError(DeliveryError):
    """The dispatch ledger store could not be read or written."""


class ConflictError(DeliveryError):
    """A unique field (e.g. a customer's phone) is already taken."""
