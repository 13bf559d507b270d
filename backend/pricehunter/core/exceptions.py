"""Custom exception classes for the application."""


class PriceHunterException(Exception):
    """Base exception for all PriceHunter errors."""

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(self.message)


class NotFoundError(PriceHunterException):
    """Raised when a requested resource is not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(f"{resource} with identifier '{identifier}' not found")


class InvalidInputError(PriceHunterException):
    """Raised when input is malformed or out of range.

    Always raised before anything is written.
    """

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Invalid {field}: {message}")


class FetchFailure(PriceHunterException):
    """Raised when a storefront page cannot be fetched after retries."""

    def __init__(self, store: str, url: str, reason: str):
        self.store = store
        self.url = url
        super().__init__(f"Fetch failed for {store} ({url}): {reason}")


class ParseFailure(PriceHunterException):
    """Raised when mandatory product fields cannot be extracted from a page."""

    def __init__(self, store: str, url: str, missing: str):
        self.store = store
        self.url = url
        self.missing = missing
        super().__init__(f"Could not parse {missing} for {store} ({url})")


class RateSourceFailure(PriceHunterException):
    """Raised when the exchange rate feed is unreachable or malformed."""

    def __init__(self, message: str):
        super().__init__(f"Exchange rate source failed: {message}")
