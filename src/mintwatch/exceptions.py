class MintwatchError(Exception):
    """
    Base exception used as the parent class for all exceptions raised by this package.

    An optional string-formatted message may be attached to the exception and retrieved by accessing
    the `.message` attribute.
    """

    message: str | None = None

    def __init__(self, message: str | None = None) -> None:
        if message:
            self.message = message
            super().__init__(message)


class SourceUnavailable(MintwatchError):
    """
    Raised when the chain head or a log range cannot be fetched from the RPC endpoint.
    """

    def __init__(self, method: str, error: str) -> None:
        self.method = method
        self.error = error
        super().__init__(message=f"{method} failed: {error}")


class StoreUnavailable(MintwatchError):
    """
    Raised when a key cannot be loaded from, or saved to, the persistent store.
    """

    def __init__(self, key: str, error: str) -> None:
        self.key = key
        self.error = error
        super().__init__(message=f"store key {key!r}: {error}")


class MalformedEvent(MintwatchError):
    """
    Raised when a log matching the mint filter does not decode to a valid mint event.
    """

    def __init__(self, tx_hash: str, log_index: int, reason: str) -> None:
        self.tx_hash = tx_hash
        self.log_index = log_index
        self.reason = reason
        super().__init__(message=f"malformed log {tx_hash}-{log_index}: {reason}")
