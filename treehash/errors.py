class TreeHashError(Exception):
    """Base class for TreeHash-specific errors."""


# Setup
class ConfigurationError(TreeHashError):
    pass


class UnsupportedAlgorithm(TreeHashError, ValueError):
    pass


# Ledger integrity
class LedgerError(TreeHashError):
    pass


class LedgerFormatError(LedgerError):
    pass


class LedgerVersionError(LedgerError):
    pass


class LedgerSettingsError(LedgerError):
    pass


# Save
class PersistenceError(TreeHashError):
    pass
