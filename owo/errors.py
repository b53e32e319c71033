"""Business-rule and storage failures raised by the ledger."""


class LedgerError(Exception):
    """Base class for every failure the ledger reports to its callers."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def name(self) -> str:
        return type(self).__name__


class InvalidAmount(LedgerError):
    pass


class InvalidRange(LedgerError):
    pass


class NotFound(LedgerError):
    pass


class DuplicateName(LedgerError):
    pass


class AccountExists(LedgerError):
    pass


class AlreadyMember(LedgerError):
    pass


class GroupFull(LedgerError):
    pass


class NotMember(LedgerError):
    pass


class InsufficientFunds(LedgerError):
    pass


class DuplicateContribution(LedgerError):
    pass


class NotEligible(LedgerError):
    pass


class AlreadyCollected(LedgerError):
    pass


class GroupClosed(LedgerError):
    pass


class StorageError(LedgerError):
    """The backing store failed in a way no business rule covers."""
