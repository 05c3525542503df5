"""Error taxonomy of the order fulfillment domain.

Malformed input is reported with protean's ``ValidationError``. The errors
below cover the remaining failure classes: an operation that is not allowed
in the current state, a missing order, item or transaction, a failed call
to a payment or shipping provider and a rejected provider signature.
"""


class OrderflowError(Exception):
    """Base class for domain errors that carry a human readable message."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class IllegalStateError(OrderflowError):
    """The operation is not allowed from the current state."""


class NotFoundError(OrderflowError):
    """An order, item or transaction does not exist."""


class ExternalProviderError(OrderflowError):
    """A payment or shipping provider rejected a call or did not answer in time."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.provider_message = message


class SignatureVerificationError(OrderflowError):
    """A provider callback carried a signature that does not match."""

    def __init__(self, transaction_id: str, message: str = "Payment signature verification failed") -> None:
        super().__init__(message)
        self.transaction_id = transaction_id
