"""
Consent Catalog for the Clarifi privacy governance engine.

Single source of truth for every consent type the app asks for: its legal
basis, whether it is required, whether it can be withdrawn and when it
expires. The ledger, the expiry watcher and the settings screens all read
from here; nothing else may hard-code these constants.

The table is checked for exhaustiveness at import time: every ConsentType
must have exactly one configuration, and a required consent can never be
withdrawable.

Usage:
    from src.privacy.catalog import ConsentType, get_configuration

    config = get_configuration(ConsentType.ANALYTICS_TRACKING)
    config.expiry_months  # 12
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import Any

from src.lib.exceptions import UnknownConsentTypeError


class ConsentType(StrEnum):
    """Distinct categories of data processing the user can consent to."""

    # Essential consents (cannot be withdrawn)
    ESSENTIAL_SERVICES = "essential_services"
    LEGAL_COMPLIANCE = "legal_compliance"
    SECURITY_MONITORING = "security_monitoring"

    # Optional consents
    ANALYTICS_TRACKING = "analytics_tracking"
    PERFORMANCE_MONITORING = "performance_monitoring"
    PERSONALIZATION = "personalization"
    MARKETING_COMMUNICATIONS = "marketing_communications"
    THIRD_PARTY_SHARING = "third_party_sharing"
    CRASH_REPORTING = "crash_reporting"
    FEATURE_USAGE_TRACKING = "feature_usage_tracking"

    # Data retention consents
    EXTENDED_DATA_RETENTION = "extended_data_retention"
    AUTO_DATA_DELETION = "auto_data_deletion"

    # Communication consents
    EDUCATIONAL_CONTENT = "educational_content"
    PRODUCT_UPDATES = "product_updates"
    SURVEY_PARTICIPATION = "survey_participation"


class LegalBasis(StrEnum):
    """PIPEDA / GDPR-style legal basis for processing."""

    CONSENT = "consent"
    CONTRACT = "contract"
    LEGAL_OBLIGATION = "legal_obligation"
    VITAL_INTERESTS = "vital_interests"
    PUBLIC_TASK = "public_task"
    LEGITIMATE_INTERESTS = "legitimate_interests"


class ConsentCategory(StrEnum):
    """Grouping used by the settings screens."""

    ESSENTIAL = "essential"
    FUNCTIONAL = "functional"
    ANALYTICS = "analytics"
    MARKETING = "marketing"


@dataclass(frozen=True)
class ConsentConfiguration:
    """
    Immutable catalog entry for one consent type.

    Invariant: a required consent is never withdrawable.
    """

    type: ConsentType
    name: str
    description: str
    legal_basis: LegalBasis
    is_required: bool
    can_withdraw: bool
    category: ConsentCategory
    expiry_months: int | None = None

    def __post_init__(self) -> None:
        if self.is_required and self.can_withdraw:
            raise ValueError(f"Required consent {self.type.value} cannot be withdrawable")
        if self.expiry_months is not None and self.expiry_months < 1:
            raise ValueError(f"expiry_months for {self.type.value} must be positive")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for export."""
        return {
            "type": self.type.value,
            "name": self.name,
            "description": self.description,
            "legal_basis": self.legal_basis.value,
            "is_required": self.is_required,
            "can_withdraw": self.can_withdraw,
            "category": self.category.value,
            "expiry_months": self.expiry_months,
        }


@dataclass(frozen=True)
class ConsentBundle:
    """Named grouping of related consent types for UI convenience."""

    id: str
    name: str
    description: str
    consent_types: tuple[ConsentType, ...]
    all_required: bool


_CONFIGURATIONS: tuple[ConsentConfiguration, ...] = (
    # Essential
    ConsentConfiguration(
        type=ConsentType.ESSENTIAL_SERVICES,
        name="Essential Services",
        description="Required for core app functionality, security, and account management",
        legal_basis=LegalBasis.CONTRACT,
        is_required=True,
        can_withdraw=False,
        category=ConsentCategory.ESSENTIAL,
    ),
    ConsentConfiguration(
        type=ConsentType.LEGAL_COMPLIANCE,
        name="Legal Compliance",
        description="Required to comply with Canadian financial regulations and PIPEDA",
        legal_basis=LegalBasis.LEGAL_OBLIGATION,
        is_required=True,
        can_withdraw=False,
        category=ConsentCategory.ESSENTIAL,
    ),
    ConsentConfiguration(
        type=ConsentType.SECURITY_MONITORING,
        name="Security Monitoring",
        description="Monitor for fraud, security threats, and account protection",
        legal_basis=LegalBasis.LEGITIMATE_INTERESTS,
        is_required=True,
        can_withdraw=False,
        category=ConsentCategory.ESSENTIAL,
    ),
    # Functional
    ConsentConfiguration(
        type=ConsentType.CRASH_REPORTING,
        name="Crash Reporting",
        description="Automatically report app crashes to help us fix bugs quickly",
        legal_basis=LegalBasis.CONSENT,
        is_required=False,
        can_withdraw=True,
        category=ConsentCategory.FUNCTIONAL,
        expiry_months=24,
    ),
    ConsentConfiguration(
        type=ConsentType.PERFORMANCE_MONITORING,
        name="Performance Monitoring",
        description="Track app performance to improve loading times and responsiveness",
        legal_basis=LegalBasis.CONSENT,
        is_required=False,
        can_withdraw=True,
        category=ConsentCategory.FUNCTIONAL,
        expiry_months=12,
    ),
    ConsentConfiguration(
        type=ConsentType.PERSONALIZATION,
        name="Personalization",
        description="Customize features and recommendations based on your usage patterns",
        legal_basis=LegalBasis.CONSENT,
        is_required=False,
        can_withdraw=True,
        category=ConsentCategory.FUNCTIONAL,
        expiry_months=24,
    ),
    # Analytics
    ConsentConfiguration(
        type=ConsentType.ANALYTICS_TRACKING,
        name="Analytics Tracking",
        description="Anonymous usage analytics to understand how features are used",
        legal_basis=LegalBasis.CONSENT,
        is_required=False,
        can_withdraw=True,
        category=ConsentCategory.ANALYTICS,
        expiry_months=12,
    ),
    ConsentConfiguration(
        type=ConsentType.FEATURE_USAGE_TRACKING,
        name="Feature Usage Tracking",
        description="Track which features you use most to prioritize improvements",
        legal_basis=LegalBasis.CONSENT,
        is_required=False,
        can_withdraw=True,
        category=ConsentCategory.ANALYTICS,
        expiry_months=12,
    ),
    # Marketing
    ConsentConfiguration(
        type=ConsentType.MARKETING_COMMUNICATIONS,
        name="Marketing Communications",
        description="Receive promotional content, tips, and product announcements",
        legal_basis=LegalBasis.CONSENT,
        is_required=False,
        can_withdraw=True,
        category=ConsentCategory.MARKETING,
        expiry_months=12,
    ),
    ConsentConfiguration(
        type=ConsentType.EDUCATIONAL_CONTENT,
        name="Educational Content",
        description="Receive financial tips, budgeting advice, and educational resources",
        legal_basis=LegalBasis.CONSENT,
        is_required=False,
        can_withdraw=True,
        category=ConsentCategory.MARKETING,
        expiry_months=24,
    ),
    ConsentConfiguration(
        type=ConsentType.PRODUCT_UPDATES,
        name="Product Updates",
        description="Get notified about new features and important app changes",
        legal_basis=LegalBasis.CONSENT,
        is_required=False,
        can_withdraw=True,
        category=ConsentCategory.MARKETING,
        expiry_months=24,
    ),
    ConsentConfiguration(
        type=ConsentType.SURVEY_PARTICIPATION,
        name="Survey Participation",
        description="Participate in user research and feedback surveys",
        legal_basis=LegalBasis.CONSENT,
        is_required=False,
        can_withdraw=True,
        category=ConsentCategory.MARKETING,
        expiry_months=12,
    ),
    # Data processing
    ConsentConfiguration(
        type=ConsentType.THIRD_PARTY_SHARING,
        name="Third-Party Data Sharing",
        description="Share anonymized data with trusted partners for service improvement",
        legal_basis=LegalBasis.CONSENT,
        is_required=False,
        can_withdraw=True,
        category=ConsentCategory.ANALYTICS,
        expiry_months=12,
    ),
    ConsentConfiguration(
        type=ConsentType.EXTENDED_DATA_RETENTION,
        name="Extended Data Retention",
        description="Keep your data longer than the legal minimum for better insights",
        legal_basis=LegalBasis.CONSENT,
        is_required=False,
        can_withdraw=True,
        category=ConsentCategory.FUNCTIONAL,
        expiry_months=36,
    ),
    ConsentConfiguration(
        type=ConsentType.AUTO_DATA_DELETION,
        name="Automatic Data Deletion",
        description="Automatically delete data once its retention period has passed",
        legal_basis=LegalBasis.CONSENT,
        is_required=False,
        can_withdraw=True,
        category=ConsentCategory.FUNCTIONAL,
    ),
)

_BUNDLES: tuple[ConsentBundle, ...] = (
    ConsentBundle(
        id="essential",
        name="Essential Services",
        description="Required for app functionality and legal compliance",
        consent_types=(
            ConsentType.ESSENTIAL_SERVICES,
            ConsentType.LEGAL_COMPLIANCE,
            ConsentType.SECURITY_MONITORING,
        ),
        all_required=True,
    ),
    ConsentBundle(
        id="app_improvement",
        name="App Improvement",
        description="Help us improve the app with crash reports and performance data",
        consent_types=(ConsentType.CRASH_REPORTING, ConsentType.PERFORMANCE_MONITORING),
        all_required=False,
    ),
    ConsentBundle(
        id="analytics",
        name="Analytics & Insights",
        description="Anonymous usage analytics and feature tracking",
        consent_types=(ConsentType.ANALYTICS_TRACKING, ConsentType.FEATURE_USAGE_TRACKING),
        all_required=False,
    ),
    ConsentBundle(
        id="personalization",
        name="Personalization",
        description="Customize your experience based on your preferences",
        consent_types=(ConsentType.PERSONALIZATION,),
        all_required=False,
    ),
    ConsentBundle(
        id="communications",
        name="Communications",
        description="Receive updates, tips, and educational content",
        consent_types=(
            ConsentType.MARKETING_COMMUNICATIONS,
            ConsentType.EDUCATIONAL_CONTENT,
            ConsentType.PRODUCT_UPDATES,
            ConsentType.SURVEY_PARTICIPATION,
        ),
        all_required=False,
    ),
)


def _build_index(
    configurations: tuple[ConsentConfiguration, ...],
) -> MappingProxyType[ConsentType, ConsentConfiguration]:
    """Index configurations by type, failing fast on gaps or duplicates."""
    index: dict[ConsentType, ConsentConfiguration] = {}
    for config in configurations:
        if config.type in index:
            raise ValueError(f"Duplicate consent configuration for {config.type.value}")
        index[config.type] = config
    missing = [t.value for t in ConsentType if t not in index]
    if missing:
        raise ValueError(f"Consent types without configuration: {missing}")
    return MappingProxyType(index)


_INDEX = _build_index(_CONFIGURATIONS)


def get_consent_configurations() -> list[ConsentConfiguration]:
    """Return every consent configuration, in catalog order."""
    return list(_CONFIGURATIONS)


def get_consent_bundles() -> list[ConsentBundle]:
    """Return the consent bundles shown by the settings screens."""
    return list(_BUNDLES)


def resolve_consent_type(value: ConsentType | str) -> ConsentType:
    """
    Coerce a value to a catalog ConsentType.

    Raises:
        UnknownConsentTypeError: If the value is not in the catalog
    """
    if isinstance(value, ConsentType):
        return value
    try:
        return ConsentType(value)
    except ValueError:
        raise UnknownConsentTypeError(value) from None


def get_configuration(consent_type: ConsentType | str) -> ConsentConfiguration:
    """
    Look up the configuration for a consent type.

    Raises:
        UnknownConsentTypeError: If the type is not in the catalog
    """
    return _INDEX[resolve_consent_type(consent_type)]


def get_bundle(bundle_id: str) -> ConsentBundle:
    """
    Look up a bundle by id.

    Raises:
        KeyError: If no bundle has that id
    """
    for bundle in _BUNDLES:
        if bundle.id == bundle_id:
            return bundle
    raise KeyError(f"Unknown consent bundle: {bundle_id}")


def configurations_by_category() -> dict[ConsentCategory, list[ConsentConfiguration]]:
    """Group configurations by UI category, preserving catalog order."""
    grouped: dict[ConsentCategory, list[ConsentConfiguration]] = {c: [] for c in ConsentCategory}
    for config in _CONFIGURATIONS:
        grouped[config.category].append(config)
    return grouped


def expiring_consent_types() -> list[ConsentType]:
    """Consent types that auto-expire (have expiry_months configured)."""
    return [c.type for c in _CONFIGURATIONS if c.expiry_months is not None]


__all__ = [
    "ConsentType",
    "LegalBasis",
    "ConsentCategory",
    "ConsentConfiguration",
    "ConsentBundle",
    "get_consent_configurations",
    "get_consent_bundles",
    "resolve_consent_type",
    "get_configuration",
    "get_bundle",
    "configurations_by_category",
    "expiring_consent_types",
]
