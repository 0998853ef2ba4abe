"""
jobaudit Models

All domain models for the job-sheet validation pipeline.

    from jobaudit.models import (
        # Enums
        ReasonCode, Severity, TemplateStatus, ConfidenceBand,
        # Templates
        Template, FieldRule, ChecklistGroup, SpecPack, TemplateRegistration,
        # Selection
        DocumentContext, SelectionResult, AutoSelect, ReviewQueue, HardStop,
        # Audit
        ExtractedField, ValidationResult, DocumentationAuditResult,
        # Fixtures
        FixtureCase, FixturePack, FixtureResult, FixturePackRunResult,
    )
"""
from __future__ import annotations

# =============================================================================
# Enums
# =============================================================================
from .enums import (
    ChecklistResultType,
    ChecklistStatus,
    CIStrategy,
    ConfidenceBand,
    DecisionType,
    DocumentationQuality,
    DocumentOutcome,
    FixtureErrorKind,
    FixtureOutcome,
    FixtureStatus,
    ReasonCode,
    SelectionMethod,
    Severity,
    SeverityTier,
    TemplateStatus,
    ValidationStatus,
)

# =============================================================================
# Templates
# =============================================================================
from .template import (
    AuditPerspective,
    ChecklistGroup,
    ChecklistTask,
    DocumentationRule,
    ExtractionHints,
    FieldRule,
    FieldRuleKind,
    MinLengthValidator,
    RegexValidator,
    RegistryStats,
    RequiredValidator,
    RoiDefinition,
    RoiRegion,
    SelectionCriteria,
    SpecPack,
    SpecPackDefaults,
    StatusLegendEntry,
    Template,
    TemplateRegistration,
    ValidationRule,
    Validator,
)

# =============================================================================
# Selection
# =============================================================================
from .selection import (
    AutoSelect,
    ContextMatches,
    DocumentContext,
    HardStop,
    ReviewQueue,
    SelectionDecision,
    SelectionPolicy,
    SelectionResult,
    SelectionScore,
    SelectionTrace,
    TokenMatches,
)

# =============================================================================
# Audit
# =============================================================================
from .audit import (
    AuditSummary,
    ConditionalFormatting,
    DocumentationAuditResult,
    ExtractedField,
    ValidationResult,
)

# =============================================================================
# Fixtures
# =============================================================================
from .fixtures import (
    ActivationGateResult,
    FixtureCase,
    FixtureCoverage,
    FixturePack,
    FixturePackRunResult,
    FixturePackValidation,
    FixtureResult,
    ValidationOutput,
)

__all__ = [
    # Enums
    "ChecklistResultType",
    "ChecklistStatus",
    "CIStrategy",
    "ConfidenceBand",
    "DecisionType",
    "DocumentationQuality",
    "DocumentOutcome",
    "FixtureErrorKind",
    "FixtureOutcome",
    "FixtureStatus",
    "ReasonCode",
    "SelectionMethod",
    "Severity",
    "SeverityTier",
    "TemplateStatus",
    "ValidationStatus",
    # Templates
    "AuditPerspective",
    "ChecklistGroup",
    "ChecklistTask",
    "DocumentationRule",
    "ExtractionHints",
    "FieldRule",
    "FieldRuleKind",
    "MinLengthValidator",
    "RegexValidator",
    "RegistryStats",
    "RequiredValidator",
    "RoiDefinition",
    "RoiRegion",
    "SelectionCriteria",
    "SpecPack",
    "SpecPackDefaults",
    "StatusLegendEntry",
    "Template",
    "TemplateRegistration",
    "ValidationRule",
    "Validator",
    # Selection
    "AutoSelect",
    "ContextMatches",
    "DocumentContext",
    "HardStop",
    "ReviewQueue",
    "SelectionDecision",
    "SelectionPolicy",
    "SelectionResult",
    "SelectionScore",
    "SelectionTrace",
    "TokenMatches",
    # Audit
    "AuditSummary",
    "ConditionalFormatting",
    "DocumentationAuditResult",
    "ExtractedField",
    "ValidationResult",
    # Fixtures
    "ActivationGateResult",
    "FixtureCase",
    "FixtureCoverage",
    "FixturePack",
    "FixturePackRunResult",
    "FixturePackValidation",
    "FixtureResult",
    "ValidationOutput",
]
