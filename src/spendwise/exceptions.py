"""Custom exceptions for Spendwise."""


class SpendwiseError(Exception):
    """Base exception for all Spendwise errors."""

    pass


class ConfigurationError(SpendwiseError):
    """Raised when configuration is invalid or missing."""

    pass


class APIError(SpendwiseError):
    """Base class for API-related errors."""

    pass


class SpendwiseAPIError(APIError):
    """Raised when a Spendwise API request fails."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class InvalidSplitError(SpendwiseError):
    """Raised when an amount cannot be split into the requested shares."""

    pass


class InvalidSettlementError(SpendwiseError):
    """Raised when a settlement to be recorded is malformed."""

    pass


class MemberNotFoundError(SpendwiseError):
    """Raised when a member name or id doesn't match anyone in the group."""

    def __init__(self, member: str, message: str | None = None):
        self.member = member
        super().__init__(message or f"No group member matches '{member}'")


class InvalidMemberError(SpendwiseError):
    """Raised when a member can't be added with the given details."""

    pass
