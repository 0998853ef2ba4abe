"""
jobaudit Enumerations

All enumeration types used throughout the jobaudit system.
Organized by domain area for clarity.

All enums inherit from (str, Enum) for JSON serialization compatibility.
"""
from __future__ import annotations

from enum import Enum


# =============================================================================
# Canonical Reason Codes
# =============================================================================

class ReasonCode(str, Enum):
    """
    Closed vocabulary of outcome explanations.

    Anything outside this set reaching a rules-engine or fixture-runner
    output is itself a validation defect.
    """
    VALID = "VALID"
    MISSING_FIELD = "MISSING_FIELD"
    UNREADABLE_FIELD = "UNREADABLE_FIELD"
    LOW_CONFIDENCE = "LOW_CONFIDENCE"
    INVALID_FORMAT = "INVALID_FORMAT"
    CONFLICT = "CONFLICT"
    OUT_OF_POLICY = "OUT_OF_POLICY"
    INCOMPLETE_EVIDENCE = "INCOMPLETE_EVIDENCE"
    OCR_FAILURE = "OCR_FAILURE"
    PIPELINE_ERROR = "PIPELINE_ERROR"
    SPEC_GAP = "SPEC_GAP"
    SECURITY_RISK = "SECURITY_RISK"


# =============================================================================
# Severity
# =============================================================================

class Severity(str, Enum):
    """Per-finding severity used by the rules engine."""
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"
    INFO = "info"


class SeverityTier(str, Enum):
    """Canonical cross-document severity tiers (S0 most severe)."""
    S0 = "S0"
    S1 = "S1"
    S2 = "S2"
    S3 = "S3"


# =============================================================================
# Template Lifecycle
# =============================================================================

class TemplateStatus(str, Enum):
    """Registration lifecycle status."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    DEPRECATED = "deprecated"


class ChecklistResultType(str, Enum):
    """Answer vocabulary a checklist task expects on the form."""
    GREEN = "green"
    ORANGE = "orange"
    RED = "red"
    YELLOW = "yellow"
    YES_NO = "yesNo"
    YES_NO_NA = "yesNoNa"
    STRING = "string"
    NUMBER = "number"


# =============================================================================
# Selection
# =============================================================================

class ConfidenceBand(str, Enum):
    """Selection confidence derived from a template score."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class DecisionType(str, Enum):
    """Outcome of the selection safety policy."""
    AUTO_SELECT = "AUTO_SELECT"
    REVIEW_QUEUE = "REVIEW_QUEUE"
    HARD_STOP = "HARD_STOP"


class SelectionMethod(str, Enum):
    """How a template was chosen."""
    FINGERPRINT = "fingerprint"
    MANUAL = "manual"
    NONE = "none"


# =============================================================================
# Rules Engine
# =============================================================================

class ValidationStatus(str, Enum):
    """Per-field or per-rule evaluation status."""
    PASSED = "passed"
    FAILED = "failed"
    WARNING = "warning"
    SKIPPED = "skipped"


class ChecklistStatus(str, Enum):
    """Normalized checklist answer."""
    GREEN = "green"
    ORANGE = "orange"
    RED = "red"
    YELLOW = "yellow"
    YES = "yes"
    NO = "no"
    NA = "na"
    UNKNOWN = "unknown"


class DocumentOutcome(str, Enum):
    """Overall documentation audit outcome."""
    PASS = "PASS"
    FAIL = "FAIL"


class DocumentationQuality(str, Enum):
    COMPLETE = "complete"
    INCOMPLETE = "incomplete"
    INCONSISTENT = "inconsistent"


# =============================================================================
# Fixture Runner
# =============================================================================

class FixtureOutcome(str, Enum):
    """Outcome a validator reports for a fixture case."""
    PASS = "PASS"
    FAIL = "FAIL"
    ERROR = "ERROR"  # actual outcome only, never expected


class FixtureStatus(str, Enum):
    """Result status of a single fixture case."""
    PASSED = "passed"
    FAILED = "failed"
    ERROR = "error"


class FixtureErrorKind(str, Enum):
    """Why a fixture case ended in status=error."""
    TIME_BUDGET_EXCEEDED = "TIME_BUDGET_EXCEEDED"
    PACK_BUDGET_EXCEEDED = "PACK_BUDGET_EXCEEDED"
    VALIDATOR_EXCEPTION = "VALIDATOR_EXCEPTION"


class CIStrategy(str, Enum):
    """Which fixture packs a CI run executes."""
    PR = "pr"
    NIGHTLY = "nightly"
