"""
Centralized Error Response Builder for the privacy governance engine.

Provides consistent error codes, messages, and i18n-ready error responses
for the settings screens that call into the consent ledger and the
retention scheduler.

Error codes are constants that map to translatable message strings.
Validation errors become explanatory messages; storage failures become a
generic "try again" message.
"""

from __future__ import annotations

from typing import Any

from src.lib.exceptions import PrivacyGovernanceError

# =============================================================================
# Error Code Constants
# =============================================================================

UNKNOWN_CONSENT_TYPE = "UNKNOWN_CONSENT_TYPE"
CONSENT_NOT_WITHDRAWABLE = "CONSENT_NOT_WITHDRAWABLE"
INVALID_WITHDRAWAL_REASON = "INVALID_WITHDRAWAL_REASON"
POLICY_NOT_ADJUSTABLE = "POLICY_NOT_ADJUSTABLE"
PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
INVENTORY_UNAVAILABLE = "INVENTORY_UNAVAILABLE"
CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
INTERNAL_ERROR = "INTERNAL_ERROR"

# Codes the UI should present as an explanation rather than a failure.
USER_VISIBLE_CODES = frozenset(
    {CONSENT_NOT_WITHDRAWABLE, INVALID_WITHDRAWAL_REASON, POLICY_NOT_ADJUSTABLE}
)

# =============================================================================
# i18n Message Registry
#
# Maps (error_code, language) -> translated message string.
# Falls back to "en" if a translation is missing for the requested language.
# =============================================================================

_ERROR_MESSAGES: dict[str, dict[str, str]] = {
    UNKNOWN_CONSENT_TYPE: {
        "en": "This privacy setting is not recognised.",
        "fr": "Ce paramètre de confidentialité n'est pas reconnu.",
    },
    CONSENT_NOT_WITHDRAWABLE: {
        "en": "This consent is required to provide the service and cannot be withdrawn.",
        "fr": "Ce consentement est requis pour fournir le service et ne peut pas être retiré.",
    },
    INVALID_WITHDRAWAL_REASON: {
        "en": "Please shorten the reason for withdrawing this consent.",
        "fr": "Veuillez raccourcir la raison du retrait de ce consentement.",
    },
    POLICY_NOT_ADJUSTABLE: {
        "en": "This data must be kept for the period required by law.",
        "fr": "Ces données doivent être conservées pendant la période exigée par la loi.",
    },
    PERSISTENCE_ERROR: {
        "en": "We couldn't save your privacy settings. Please try again.",
        "fr": "Impossible d'enregistrer vos paramètres de confidentialité. Veuillez réessayer.",
    },
    INVENTORY_UNAVAILABLE: {
        "en": "Your data couldn't be cleaned up right now. Please try again later.",
        "fr": "Vos données n'ont pas pu être nettoyées pour le moment. Veuillez réessayer plus tard.",
    },
    CONFIGURATION_ERROR: {
        "en": "Privacy settings are misconfigured. Please contact support.",
        "fr": "Les paramètres de confidentialité sont mal configurés. Veuillez contacter le soutien.",
    },
    INTERNAL_ERROR: {
        "en": "An internal error occurred. Please try again.",
        "fr": "Une erreur interne s'est produite. Veuillez réessayer.",
    },
}

_DEFAULT_LANG = "en"


# =============================================================================
# Error Response Builder
# =============================================================================


def get_error_message(code: str, lang: str = "en") -> str:
    """
    Get a translated error message for a given error code.

    Falls back to English if the requested language is not available.
    Falls back to a generic message if the error code is unknown.

    Args:
        code: Error code constant (e.g. CONSENT_NOT_WITHDRAWABLE)
        lang: ISO 639-1 language code ("en" or "fr")

    Returns:
        Translated error message string
    """
    messages = _ERROR_MESSAGES.get(code, {})
    return messages.get(lang, messages.get(_DEFAULT_LANG, "An error occurred."))


def error_code_for(exc: BaseException) -> str:
    """Map an exception to its error code (INTERNAL_ERROR for foreign exceptions)."""
    if isinstance(exc, PrivacyGovernanceError):
        return exc.code
    return INTERNAL_ERROR


def build_error_response(
    error: str | BaseException,
    message: str | None = None,
    details: dict[str, Any] | None = None,
    lang: str = "en",
) -> dict[str, Any]:
    """
    Build a structured error response dict.

    Args:
        error: Error code constant, or an exception raised by the engine
        message: Optional override message (bypasses i18n lookup)
        details: Optional additional error details; defaults to the
                 exception's structured details
        lang: ISO 639-1 language code for i18n message lookup

    Returns:
        {"code": str, "message": str, "user_visible": bool, "details": dict}
        ("details" only when present)
    """
    if isinstance(error, BaseException):
        code = error_code_for(error)
        if details is None and isinstance(error, PrivacyGovernanceError) and error.details:
            details = dict(error.details)
    else:
        code = error

    resolved_message = message if message is not None else get_error_message(code, lang)
    response: dict[str, Any] = {
        "code": code,
        "message": resolved_message,
        "user_visible": code in USER_VISIBLE_CODES,
    }
    if details is not None:
        response["details"] = details
    return response


__all__ = [
    "UNKNOWN_CONSENT_TYPE",
    "CONSENT_NOT_WITHDRAWABLE",
    "INVALID_WITHDRAWAL_REASON",
    "POLICY_NOT_ADJUSTABLE",
    "PERSISTENCE_ERROR",
    "INVENTORY_UNAVAILABLE",
    "CONFIGURATION_ERROR",
    "INTERNAL_ERROR",
    "USER_VISIBLE_CODES",
    "get_error_message",
    "error_code_for",
    "build_error_response",
]
