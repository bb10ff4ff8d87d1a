# ============================================================================
# Balance Sync v1.0.0
# Exchange Errors - Typed Failure Kinds
# ============================================================================
#
# Purpose: Error hierarchy shared by the signer, client, parser and
#          orchestrator. Every error carries a stable error code so log
#          lines and completion outcomes can be matched without parsing text.
#
# Error Codes:
#   - PLNX-NET-001: Transport failure (no response / connection failure)
#   - PLNX-AUTH-001: Credentials rejected by the exchange
#   - PLNX-PARSE-001: Response body malformed or schema mismatch
#   - PLNX-STATE-001: Operation not permitted in current sync state
#   - PLNX-SEC-001: Credentials missing or empty
#   - CFG-001: Invalid configuration
#
# ============================================================================

from typing import Optional


class ErrorCode:
    """Error codes for audit logging."""
    TRANSPORT = "PLNX-NET-001"
    INVALID_CREDENTIALS = "PLNX-AUTH-001"
    MALFORMED_RESPONSE = "PLNX-PARSE-001"
    INVALID_STATE = "PLNX-STATE-001"
    MISSING_CREDENTIALS = "PLNX-SEC-001"
    CONFIGURATION = "CFG-001"


class BalanceSyncError(Exception):
    """
    Base exception for all Balance Sync errors.

    Attributes:
        message: Human-readable error message
        error_code: Stable error code (see ErrorCode)
    """

    error_code = "PLNX-000"

    def __init__(self, message: str, error_code: Optional[str] = None):
        if error_code is not None:
            self.error_code = error_code
        self.message = message
        super().__init__(f"[{self.error_code}] {message}")


class TransportError(BalanceSyncError):
    """Raised when the exchange could not be reached (PLNX-NET-001)."""
    error_code = ErrorCode.TRANSPORT


class InvalidCredentials(BalanceSyncError):
    """
    Raised when the exchange rejects the API key/secret pair (PLNX-AUTH-001).

    Covers HTTP 400/403 responses and HTTP 200 responses carrying an
    embedded ``{"error": ...}`` payload.
    """
    error_code = ErrorCode.INVALID_CREDENTIALS

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        exchange_message: Optional[str] = None
    ):
        self.status_code = status_code
        self.exchange_message = exchange_message
        super().__init__(message)


class MalformedResponse(BalanceSyncError):
    """Raised when a response body is not valid JSON or has the wrong shape (PLNX-PARSE-001)."""
    error_code = ErrorCode.MALFORMED_RESPONSE


class InvalidStateError(BalanceSyncError):
    """Raised when an operation is attempted in the wrong orchestrator state (PLNX-STATE-001)."""
    error_code = ErrorCode.INVALID_STATE


class MissingCredentialsError(BalanceSyncError):
    """Raised when an API key or secret is missing or empty (PLNX-SEC-001)."""
    error_code = ErrorCode.MISSING_CREDENTIALS


class ConfigurationError(BalanceSyncError):
    """Raised when environment configuration is invalid (CFG-001)."""
    error_code = ErrorCode.CONFIGURATION
