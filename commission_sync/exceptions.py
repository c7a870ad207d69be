"""Exceptions raised by the commission sync pipeline"""

class CommissionSyncError(Exception):
    """Base exception for commission sync errors"""
    pass

class CrawlError(CommissionSyncError):
    """The exchange platform returned an error we cannot use"""
    pass

class TransientCrawlError(CrawlError):
    """Timeout, connection failure or 5xx from the exchange platform; safe to re-run"""
    pass

class UnsupportedExchangeError(CommissionSyncError):
    """No crawler is registered for the exchange code"""
    pass

class ExchangeNotFoundError(CommissionSyncError):
    pass

class ExchangeInactiveError(CommissionSyncError):
    pass

class NoActiveCredentialError(CommissionSyncError):
    """No usable crawler token exists for the exchange"""
    pass

class RecordProcessingError(CommissionSyncError):
    """Failure while reconciling a single record"""
    pass

class InvalidRateError(RecordProcessingError):
    """A configured commission rate lies outside [0, 1]"""
    pass

class DuplicateSnapshotError(CommissionSyncError):
    """A finalized snapshot already exists for the key"""
    pass

class FutureDateError(CommissionSyncError, ValueError):
    """The target date has not happened yet"""
    pass
