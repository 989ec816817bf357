"""
Exception classes for playlist-sync.

This module defines all custom exceptions used throughout the application.
Each exception distinguishes one failure mode so the synchronizer and the
command line can decide whether to absorb, retry or abort.

Exception Hierarchy:
    PlaylistSyncError (base)
        TransportError - network/HTTP failure, no partial effect assumed
        AuthError - invalid or expired credential, never retried
        RateLimited - throttling signal from a platform
            RateLimitExceeded - retries exhausted, terminal
        UnsupportedOperation - capability absent on a platform
        ConfigurationError - invalid configuration, raised before any network call
        DataIntegrityWarning - duplicate or malformed item, skipped and logged

A search that finds no match is not an error: ``search_song`` returns None.
"""

from typing import Any, Dict, Optional


class PlaylistSyncError(Exception):
    """
    Base exception for all playlist-sync errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (platform, playlist, payload).

    Example:
        try:
            await synchronize(src, dst, options)
        except PlaylistSyncError as e:
            logger.error(f"Sync failed: {e.message}")
            if e.details:
                logger.debug(f"Details: {e.details}")
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error description shown to the user.
            details: Optional dictionary containing additional context about the error.
                     Common keys include:
                     - 'platform': platform kind value involved in the error
                     - 'playlist': playlist name being processed
                     - 'original_error': the underlying exception if wrapping another error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class TransportError(PlaylistSyncError):
    """
    Raised when a request fails at the network or HTTP level.

    This aborts the current run. Playlists already synchronized stay
    synchronized; rerunning converges without duplicates.
    """
    pass


class AuthError(PlaylistSyncError):
    """
    Raised when a platform rejects the session credential.

    Never retried automatically. The client refreshes its credential before
    surfacing the error so a later call can succeed, but the failing request
    itself is reported to the caller for re-authentication.
    """
    pass


class RateLimited(PlaylistSyncError):
    """
    Raised when a platform signals throttling.

    Caught by the retry policy, which backs off and retries. Only surfaces to
    callers as RateLimitExceeded once the retry budget is spent.

    Attributes:
        payload: Diagnostic payload captured from the throttled response.
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        payload: Optional[str] = None
    ) -> None:
        super().__init__(message, details)
        self.payload = payload


class RateLimitExceeded(RateLimited):
    """
    Raised when the retry policy is exhausted.

    Terminal: the run stops. ``payload`` holds the last captured diagnostic
    response body so it can be inspected after the fact.
    """

    def __init__(
        self,
        message: str,
        attempts: int,
        details: Optional[Dict[str, Any]] = None,
        payload: Optional[str] = None
    ) -> None:
        super().__init__(message, details, payload)
        self.attempts = attempts


class UnsupportedOperation(PlaylistSyncError):
    """
    Raised when a platform adapter does not implement a capability.

    Example:
        raise UnsupportedOperation(
            "delete_playlist is not supported",
            details={'platform': 'spotify'}
        )
    """
    pass


class ConfigurationError(PlaylistSyncError):
    """
    Raised when the configuration cannot be used.

    This is a CRITICAL error raised before any mutation is attempted.

    Common causes:
        - Source and destination accounts in different countries without override
        - Missing platform credentials
        - Unknown platform name on the command line
    """
    pass


class DataIntegrityWarning(PlaylistSyncError):
    """
    Raised for a duplicate or malformed item.

    Always absorbed locally: the item is skipped, a warning is logged and
    processing continues with the next item.
    """
    pass
