"""
jobaudit Audit Models

Inputs and outputs of the conditional rules engine.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from .enums import (
    ChecklistStatus,
    DocumentationQuality,
    DocumentOutcome,
    ReasonCode,
    Severity,
    SeverityTier,
    ValidationStatus,
)


@dataclass(frozen=True)
class ExtractedField:
    """One field value produced by the external extraction stage."""
    field: str
    value: Any
    confidence: float = 1.0
    page_number: Optional[int] = None
    source: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExtractedField":
        return cls(
            field=str(data["field"]),
            value=data.get("value"),
            confidence=float(data.get("confidence", 1.0)),
            page_number=data.get("pageNumber"),
            source=data.get("source"),
        )


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of one field rule, checklist task or documentation-audit rule."""
    rule_id: str
    field: str
    status: ValidationStatus
    severity: Severity
    reason_code: ReasonCode
    message: str
    value: Any = None
    confidence: float = 0.0
    page_number: Optional[int] = None

    @property
    def is_finding(self) -> bool:
        """Failures and warnings are reported as findings."""
        return self.status in (ValidationStatus.FAILED, ValidationStatus.WARNING)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "ruleId": self.rule_id,
            "field": self.field,
            "status": self.status.value,
            "value": self.value,
            "confidence": self.confidence,
            "severity": self.severity.value,
            "message": self.message,
            "reasonCode": self.reason_code.value,
        }
        if self.page_number is not None:
            data["pageNumber"] = self.page_number
        return data


@dataclass(frozen=True)
class ConditionalFormatting:
    """Display hint for a checklist answer."""
    field: str
    status: ChecklistStatus
    display_color: str
    display_label: str
    impact: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "status": self.status.value,
            "displayColor": self.display_color,
            "displayLabel": self.display_label,
            "impact": self.impact,
        }


@dataclass(frozen=True)
class AuditSummary:
    """Status counters. passed + failed + warning + skipped == total."""
    total_fields: int
    passed_fields: int
    failed_fields: int
    warning_fields: int
    skipped_fields: int
    consistency_score: float
    completeness_score: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalFields": self.total_fields,
            "passedFields": self.passed_fields,
            "failedFields": self.failed_fields,
            "warningFields": self.warning_fields,
            "skippedFields": self.skipped_fields,
            "consistencyScore": self.consistency_score,
            "completenessScore": self.completeness_score,
        }


@dataclass
class DocumentationAuditResult:
    """Complete documentation audit for one document."""
    template_id: str
    document_outcome: DocumentOutcome
    documentation_quality: DocumentationQuality
    validated_fields: list[ValidationResult]
    findings: list[ValidationResult]
    conditional_formatting: list[ConditionalFormatting]
    summary: AuditSummary
    next_steps: list[str]
    reason_codes: list[ReasonCode]
    severity_tiers: dict[SeverityTier, int] = field(default_factory=dict)
    template_version: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.document_outcome == DocumentOutcome.PASS

    def evidence_keys(self) -> list[str]:
        """Fields that carried a value into evaluation, sorted."""
        return sorted({
            r.field for r in self.validated_fields
            if r.value is not None
        })

    def to_dict(self) -> dict[str, Any]:
        return {
            "templateId": self.template_id,
            "templateVersion": self.template_version,
            "documentOutcome": self.document_outcome.value,
            "documentationQuality": self.documentation_quality.value,
            "validatedFields": [r.to_dict() for r in self.validated_fields],
            "findings": [r.to_dict() for r in self.findings],
            "conditionalFormatting": [c.to_dict() for c in self.conditional_formatting],
            "summary": self.summary.to_dict(),
            "nextSteps": list(self.next_steps),
            "reasonCodes": [c.value for c in self.reason_codes],
            "severityTiers": {t.value: n for t, n in sorted(self.severity_tiers.items())},
        }
