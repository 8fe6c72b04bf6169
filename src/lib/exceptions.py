"""
Custom exception hierarchy for the Clarifi privacy governance engine.

Provides structured exception types for the consent ledger, retention
policies, purge engine and scheduler:
- Validation errors (unknown type, non-withdrawable consent, reason too
  long, fixed policy)
- Storage errors (persistence, data inventory)
- Configuration errors

All exceptions inherit from PrivacyGovernanceError, enabling a catch-all
for governance errors while keeping the ability to catch specific types.
Every class carries a stable ``code`` used by src.lib.errors to build
user-facing messages.
"""

from __future__ import annotations

from typing import Any


class PrivacyGovernanceError(Exception):
    """Base exception for all privacy governance errors."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str = "", **details: Any) -> None:
        self.details: dict[str, Any] = details
        super().__init__(message or self.__class__.__doc__ or self.code)


class ConfigurationError(PrivacyGovernanceError):
    """Missing environment variables, invalid config values, or startup failures."""

    code = "CONFIGURATION_ERROR"


class UnknownConsentTypeError(PrivacyGovernanceError):
    """A consent type outside the catalog was passed to the ledger."""

    code = "UNKNOWN_CONSENT_TYPE"

    def __init__(self, consent_type: Any) -> None:
        self.consent_type = consent_type
        super().__init__(f"Unknown consent type: {consent_type!r}", consent_type=str(consent_type))


class NonWithdrawableConsentError(PrivacyGovernanceError):
    """The user attempted to withdraw a consent that is required."""

    code = "CONSENT_NOT_WITHDRAWABLE"

    def __init__(self, consent_type: Any) -> None:
        self.consent_type = consent_type
        value = getattr(consent_type, "value", consent_type)
        super().__init__(f"Consent type {value} cannot be withdrawn", consent_type=str(value))


class InvalidWithdrawalReasonError(PrivacyGovernanceError):
    """The withdrawal reason exceeds the stored maximum length."""

    code = "INVALID_WITHDRAWAL_REASON"

    def __init__(self, length: int, max_length: int) -> None:
        super().__init__(
            f"Withdrawal reason is {length} characters, the maximum is {max_length}",
            length=length,
            max_length=max_length,
        )


class PolicyNotAdjustableError(PrivacyGovernanceError):
    """The user attempted to change a legally fixed retention policy."""

    code = "POLICY_NOT_ADJUSTABLE"

    def __init__(self, category: Any, reason: str = "retention is fixed by law") -> None:
        self.category = category
        value = getattr(category, "value", category)
        super().__init__(f"Retention policy for {value} is not adjustable: {reason}", category=str(value))


class PersistenceError(PrivacyGovernanceError):
    """The underlying key/value store failed to read or write."""

    code = "PERSISTENCE_ERROR"


class InventoryUnavailableError(PrivacyGovernanceError):
    """The data inventory could not enumerate deletable items."""

    code = "INVENTORY_UNAVAILABLE"


__all__ = [
    "PrivacyGovernanceError",
    "ConfigurationError",
    "UnknownConsentTypeError",
    "NonWithdrawableConsentError",
    "InvalidWithdrawalReasonError",
    "PolicyNotAdjustableError",
    "PersistenceError",
    "InventoryUnavailableError",
]
