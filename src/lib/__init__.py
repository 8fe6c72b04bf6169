"""
Lib package for the Clarifi privacy governance engine.

Contains shared utilities:
- exceptions.py: Governance exception hierarchy
- errors.py: Centralized error response builder with i18n
- logging.py: structlog configuration
"""

from src.lib.errors import (
    CONFIGURATION_ERROR,
    CONSENT_NOT_WITHDRAWABLE,
    INTERNAL_ERROR,
    INVALID_WITHDRAWAL_REASON,
    INVENTORY_UNAVAILABLE,
    PERSISTENCE_ERROR,
    POLICY_NOT_ADJUSTABLE,
    UNKNOWN_CONSENT_TYPE,
    build_error_response,
    error_code_for,
    get_error_message,
)
from src.lib.exceptions import (
    ConfigurationError,
    InvalidWithdrawalReasonError,
    InventoryUnavailableError,
    NonWithdrawableConsentError,
    PersistenceError,
    PolicyNotAdjustableError,
    PrivacyGovernanceError,
    UnknownConsentTypeError,
)

__all__ = [
    # Exceptions
    "PrivacyGovernanceError",
    "ConfigurationError",
    "UnknownConsentTypeError",
    "NonWithdrawableConsentError",
    "InvalidWithdrawalReasonError",
    "PolicyNotAdjustableError",
    "PersistenceError",
    "InventoryUnavailableError",
    # Errors
    "UNKNOWN_CONSENT_TYPE",
    "CONSENT_NOT_WITHDRAWABLE",
    "INVALID_WITHDRAWAL_REASON",
    "POLICY_NOT_ADJUSTABLE",
    "PERSISTENCE_ERROR",
    "INVENTORY_UNAVAILABLE",
    "CONFIGURATION_ERROR",
    "INTERNAL_ERROR",
    "get_error_message",
    "error_code_for",
    "build_error_response",
]
