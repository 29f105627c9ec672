"""Exceptions raised across subsystem boundaries."""


class FlowLayoutError(ValueError):
    """Raised when a flow plan has duplicate names or overlapping ranges."""


class BotIdError(ValueError):
    """Raised when a bot identity is not in 'Customer.BotName' form."""


class PatchServiceError(Exception):
    """Error from the AI patch service.

    Attributes:
        retryable: Whether the same request might succeed if repeated
    """

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable
