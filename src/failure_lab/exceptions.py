"""Exception hierarchy for the failure lab service."""


class FailureLabError(RuntimeError):
    """Base exception for failure lab errors."""


class EntityNotFoundError(FailureLabError):
    """Raised when a test entity lookup by id finds nothing."""

    def __init__(self, entity_id: int) -> None:
        self.entity_id = entity_id
        super().__init__(f"Entity not found with id: {entity_id}")


class FanoutError(FailureLabError):
    """Raised when an internal fan-out request cannot be completed."""


class CallerInFlightError(FailureLabError):
    """Raised when a simulator call reuses the id of a caller that is still running."""

    def __init__(self, caller_id: str) -> None:
        self.caller_id = caller_id
        super().__init__(f"Caller already in flight: {caller_id}")
