"""
jobaudit Conditional Rules Engine

Evaluates a selected template's rules against extracted fields and produces
a documentation audit: did the engineer document the job properly?

Key features:
- Per-field rules: presence, confidence, validators, dependent evidence
- Checklist groups with a fixed status vocabulary (synonym normalization)
- Killer questions: a failed physical check is acceptable only when the
  engineer documented it
- Summary questions must agree with killer questions anywhere in the document
- DOC_AUDIT_ consistency and completeness rules
- Deterministic aggregation, sorted next steps, canonical reason codes

Evaluation never raises for a missing template or an internal failure; it
returns a FAIL result carrying a PIPELINE_ERROR finding.

Usage:
    engine = ConditionalRulesEngine(registry)
    result = engine.evaluate_document("ACME_GAS_SAFETY_V1", fields)
    if not result.passed:
        print(result.next_steps)
"""
from __future__ import annotations

import logging
import re
import time
from collections import Counter
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from ..config import Settings
from ..models import (
    AuditSummary,
    ChecklistGroup,
    ChecklistStatus,
    ChecklistTask,
    ConditionalFormatting,
    DocumentationAuditResult,
    DocumentationQuality,
    DocumentationRule,
    DocumentOutcome,
    ExtractedField,
    FieldRule,
    MinLengthValidator,
    ReasonCode,
    RegexValidator,
    RequiredValidator,
    Severity,
    SeverityTier,
    Template,
    ValidationResult,
    ValidationRule,
    ValidationStatus,
    Validator,
)
from ..semantics import severity_to_tier
from .template_registry import TemplateRegistry

logger = logging.getLogger(__name__)


# =============================================================================
# Status Vocabulary
# =============================================================================

_STATUS_SYNONYMS: dict[ChecklistStatus, tuple[str, ...]] = {
    ChecklistStatus.GREEN: ("green", "completed", "pass", "passed", "ok"),
    ChecklistStatus.ORANGE: ("orange", "attention", "warning", "warn"),
    ChecklistStatus.RED: ("red", "failed", "fail", "critical", "error"),
    ChecklistStatus.YELLOW: ("yellow", "n/a", "na", "not applicable"),
    ChecklistStatus.YES: ("yes", "y", "true", "1"),
    ChecklistStatus.NO: ("no", "n", "false", "0"),
}

_SYNONYM_LOOKUP: dict[str, ChecklistStatus] = {
    word: status
    for status, words in _STATUS_SYNONYMS.items()
    for word in words
}


@dataclass(frozen=True)
class LegendEntry:
    display_color: str
    display_label: str
    impact: str


STATUS_LEGEND: dict[ChecklistStatus, LegendEntry] = {
    ChecklistStatus.GREEN: LegendEntry("#22c55e", "Completed", "Task completed satisfactorily"),
    ChecklistStatus.ORANGE: LegendEntry("#f97316", "Requires Attention", "Task requires follow-up or additional work"),
    ChecklistStatus.RED: LegendEntry("#ef4444", "Failed/Critical", "Critical failure requiring immediate attention"),
    ChecklistStatus.YELLOW: LegendEntry("#eab308", "N/A", "Task not applicable for this asset type"),
    ChecklistStatus.YES: LegendEntry("#22c55e", "Yes", "Affirmative response"),
    ChecklistStatus.NO: LegendEntry("#ef4444", "No", "Negative response"),
    ChecklistStatus.NA: LegendEntry("#9ca3af", "N/A", "Not applicable"),
    ChecklistStatus.UNKNOWN: LegendEntry("#6b7280", "Unknown", "Status could not be determined"),
}

_NEGATIVE = (ChecklistStatus.NO, ChecklistStatus.RED)
_AFFIRMATIVE = (ChecklistStatus.YES, ChecklistStatus.GREEN)


def normalize_status(value: Any) -> ChecklistStatus:
    """Map a raw answer onto the checklist vocabulary; unmatched is UNKNOWN."""
    if value is None:
        return ChecklistStatus.UNKNOWN
    if isinstance(value, bool):
        return ChecklistStatus.YES if value else ChecklistStatus.NO
    return _SYNONYM_LOOKUP.get(str(value).strip().lower(), ChecklistStatus.UNKNOWN)


def get_conditional_formatting(field_name: str, status: ChecklistStatus) -> ConditionalFormatting:
    legend = STATUS_LEGEND[status]
    return ConditionalFormatting(
        field=field_name,
        status=status,
        display_color=legend.display_color,
        display_label=legend.display_label,
        impact=legend.impact,
    )


# Remediation text per reason code
NEXT_STEP_TEXT: dict[ReasonCode, str] = {
    ReasonCode.INCOMPLETE_EVIDENCE: "Add supporting documentation (comments, photos, follow-up actions)",
    ReasonCode.CONFLICT: "Review and resolve inconsistencies between fields",
    ReasonCode.LOW_CONFIDENCE: "Re-scan document for better OCR quality",
    ReasonCode.INVALID_FORMAT: "Correct field values to match expected format",
    ReasonCode.UNREADABLE_FIELD: "Re-scan or re-enter unreadable checklist answers",
}


# =============================================================================
# Evaluation Context
# =============================================================================

@dataclass(frozen=True)
class _Context:
    """Per-document state shared by the evaluation passes."""
    template: Template
    fields: Mapping[str, ExtractedField]
    task_status: Mapping[str, ChecklistStatus]
    killer_failed: bool


# =============================================================================
# Engine
# =============================================================================

class ConditionalRulesEngine:
    """
    Documentation-audit evaluator.

    Holds a reference to the registry it resolves template ids against and
    the settings that name the dependent-evidence fields.
    """

    def __init__(self, registry: TemplateRegistry, settings: Optional[Settings] = None) -> None:
        self.registry = registry
        self.settings = settings or registry.settings

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def evaluate_document(
        self,
        template_id: str,
        extracted_fields: Iterable[ExtractedField],
    ) -> DocumentationAuditResult:
        """
        Evaluate an active template against extracted fields.

        Unknown, inactive or deprecated templates produce a FAIL result
        with a PIPELINE_ERROR finding.
        """
        template = self.registry.get_template(template_id)
        if template is None:
            logger.warning(
                "Evaluation requested for unavailable template %s", template_id,
                extra={"template_id": template_id},
            )
            return create_failure_result(template_id, f"Template '{template_id}' not found or not active")
        return self.evaluate_template(template, extracted_fields)

    def evaluate_template(
        self,
        template: Template,
        extracted_fields: Iterable[ExtractedField],
    ) -> DocumentationAuditResult:
        """Evaluate a template object directly, whatever its lifecycle status."""
        start = time.perf_counter()
        try:
            result = self._evaluate(template, list(extracted_fields))
        except Exception as e:
            logger.exception(
                "Rules evaluation failed for %s", template.template_id,
                extra={"template_id": template.template_id},
            )
            return create_failure_result(
                template.template_id,
                f"Rules evaluation failed: {type(e).__name__}: {e}",
                template_version=template.version,
            )
        logger.info(
            "Evaluated %s: %s", template.template_id, result.document_outcome.value,
            extra={
                "template_id": template.template_id,
                "outcome": result.document_outcome.value,
                "duration_ms": round((time.perf_counter() - start) * 1000, 3),
            },
        )
        return result

    # -------------------------------------------------------------------------
    # Passes
    # -------------------------------------------------------------------------

    def _evaluate(self, template: Template, extracted: list[ExtractedField]) -> DocumentationAuditResult:
        # Last value wins for repeated field names
        fields = {f.field: f for f in extracted}

        # Pass 1: normalize every checklist answer so summary questions can
        # see killer questions declared in any group
        task_status: dict[str, ChecklistStatus] = {}
        killer_failed = False
        for _, task in template.iter_checklist_tasks():
            present = fields.get(task.task_id)
            status = normalize_status(present.value) if present is not None else ChecklistStatus.UNKNOWN
            task_status[task.task_id] = status
            if task.killer_question and status in _NEGATIVE:
                killer_failed = True

        ctx = _Context(template=template, fields=fields, task_status=task_status,
                       killer_failed=killer_failed)

        # Pass 2: judge fields and tasks in declaration order
        validated: list[ValidationResult] = []
        formatting: list[ConditionalFormatting] = []
        for name, rule in template.field_rules.items():
            if isinstance(rule, ChecklistGroup):
                for task in rule.items:
                    status = task_status[task.task_id]
                    formatting.append(get_conditional_formatting(task.task_id, status))
                    validated.append(self._evaluate_task(task, status, ctx))
            elif isinstance(rule, FieldRule):
                validated.append(self._evaluate_field(name, rule, ctx))
            else:
                raise TypeError(f"Unhandled field rule kind: {type(rule).__name__}")

        # Pass 3: document-level audit rules see every prior result
        validated.extend(self._evaluate_doc_audit_rules(ctx, validated))

        return build_audit_result(template.template_id, validated, formatting,
                                  template_version=template.version)

    # -------------------------------------------------------------------------
    # Field Rules
    # -------------------------------------------------------------------------

    def _evaluate_field(self, name: str, rule: FieldRule, ctx: _Context) -> ValidationResult:
        rule_id = f"FIELD_{name.upper()}"
        extracted = ctx.fields.get(name)

        if extracted is None:
            if rule.required:
                return ValidationResult(
                    rule_id=rule_id, field=name,
                    status=ValidationStatus.FAILED, severity=Severity.MAJOR,
                    reason_code=ReasonCode.MISSING_FIELD,
                    message=f"Required field '{name}' is missing",
                )
            return ValidationResult(
                rule_id=rule_id, field=name,
                status=ValidationStatus.SKIPPED, severity=Severity.INFO,
                reason_code=ReasonCode.VALID,
                message=f"Optional field '{name}' not present",
            )

        def result(status, severity, code, message, rid=rule_id) -> ValidationResult:
            return ValidationResult(
                rule_id=rid, field=name, status=status, severity=severity,
                reason_code=code, message=message, value=extracted.value,
                confidence=extracted.confidence, page_number=extracted.page_number,
            )

        if extracted.confidence < self.settings.low_confidence_threshold:
            return result(
                ValidationStatus.WARNING, Severity.MINOR, ReasonCode.LOW_CONFIDENCE,
                f"Field '{name}' has low confidence ({extracted.confidence * 100:.0f}%)",
            )

        for validator in rule.validators:
            ok, message = run_validator(validator, extracted.value)
            if not ok:
                return result(ValidationStatus.FAILED, Severity.MAJOR, ReasonCode.INVALID_FORMAT, message)

        if rule.documentation_rule is not None and normalize_status(extracted.value) == ChecklistStatus.YES:
            failure = self._check_if_yes(rule.documentation_rule, ctx, f"Field '{name}'")
            if failure is not None:
                suffix, message = failure
                return result(
                    ValidationStatus.FAILED, Severity.MAJOR, ReasonCode.INCOMPLETE_EVIDENCE,
                    message, rid=f"DOC_AUDIT_{name.upper()}_{suffix}",
                )

        return result(
            ValidationStatus.PASSED, Severity.INFO, ReasonCode.VALID,
            f"Field '{name}' validated successfully",
        )

    # -------------------------------------------------------------------------
    # Checklist Tasks
    # -------------------------------------------------------------------------

    def _evaluate_task(self, task: ChecklistTask, status: ChecklistStatus, ctx: _Context) -> ValidationResult:
        """
        Judge one checklist task.

        Order: missing, unreadable, optional-absent, killer question,
        summary question, ifYes dependencies, pass.
        """
        base_id = f"TASK_{task.task_id.upper()}"
        extracted = ctx.fields.get(task.task_id)

        def result(status_, severity, code, message, rid=base_id) -> ValidationResult:
            return ValidationResult(
                rule_id=rid, field=task.task_id, status=status_, severity=severity,
                reason_code=code, message=message,
                value=extracted.value if extracted is not None else None,
                confidence=extracted.confidence if extracted is not None else 0.0,
                page_number=extracted.page_number if extracted is not None else None,
            )

        if extracted is None:
            if task.required:
                return result(
                    ValidationStatus.FAILED, Severity.MAJOR, ReasonCode.MISSING_FIELD,
                    f"Required task '{task.task}' is not completed",
                )
            return result(
                ValidationStatus.SKIPPED, Severity.INFO, ReasonCode.VALID,
                f"Optional task '{task.task}' not answered",
            )

        if status == ChecklistStatus.UNKNOWN:
            if task.required:
                return result(
                    ValidationStatus.FAILED, Severity.MAJOR, ReasonCode.UNREADABLE_FIELD,
                    f"Required task '{task.task}' has an unrecognized answer '{extracted.value}'",
                )
            return result(
                ValidationStatus.WARNING, Severity.MINOR, ReasonCode.UNREADABLE_FIELD,
                f"Task '{task.task}' has an unrecognized answer '{extracted.value}'",
            )

        if task.killer_question and status in _NEGATIVE:
            killer_id = f"{base_id}_KILLER"
            if not self._has_comments(ctx):
                return result(
                    ValidationStatus.FAILED, Severity.CRITICAL, ReasonCode.INCOMPLETE_EVIDENCE,
                    f"Killer question '{task.task}' failed but engineer did not document the reason",
                    rid=killer_id,
                )
            return result(
                ValidationStatus.PASSED, Severity.INFO, ReasonCode.VALID,
                f"Killer question '{task.task}' failed but engineer properly documented the issue",
                rid=killer_id,
            )

        if task.summary_question and ctx.killer_failed and status in _AFFIRMATIVE:
            return result(
                ValidationStatus.FAILED, Severity.CRITICAL, ReasonCode.CONFLICT,
                f"Summary question '{task.task}' is inconsistent with killer question failures",
                rid=f"{base_id}_SUMMARY",
            )

        if task.documentation_rule is not None and status == ChecklistStatus.YES:
            failure = self._check_if_yes(task.documentation_rule, ctx, f"Task '{task.task}'")
            if failure is not None:
                suffix, message = failure
                return result(
                    ValidationStatus.FAILED, Severity.MAJOR, ReasonCode.INCOMPLETE_EVIDENCE,
                    message, rid=f"{base_id}_{suffix}",
                )

        return result(
            ValidationStatus.PASSED, Severity.INFO, ReasonCode.VALID,
            f"Task '{task.task}' validated successfully",
        )

    # -------------------------------------------------------------------------
    # Dependent Evidence
    # -------------------------------------------------------------------------

    def _has_comments(self, ctx: _Context) -> bool:
        comments = ctx.fields.get(self.settings.comments_field)
        if comments is None or comments.value is None:
            return False
        return len(str(comments.value).strip()) >= self.settings.min_comment_length

    def _has_follow_up(self, ctx: _Context) -> bool:
        follow_up = ctx.fields.get(self.settings.follow_up_field)
        return follow_up is not None and normalize_status(follow_up.value) == ChecklistStatus.YES

    def _check_if_yes(self, rule: DocumentationRule, ctx: _Context,
                      subject: str) -> Optional[tuple[str, str]]:
        """(rule id suffix, message) of the first unmet ifYes dependency."""
        if rule.requires_follow_up and not self._has_follow_up(ctx):
            return "FOLLOWUP", rule.description or f"{subject} = Yes requires follow-up to be documented"
        if rule.requires_comments and not self._has_comments(ctx):
            return "COMMENTS", rule.description or f"{subject} = Yes requires engineer comments"
        return None

    # -------------------------------------------------------------------------
    # Documentation Audit Rules
    # -------------------------------------------------------------------------

    def _evaluate_doc_audit_rules(self, ctx: _Context,
                                  prior: list[ValidationResult]) -> list[ValidationResult]:
        results = []
        for rule in ctx.template.validation_rules:
            if not rule.rule_id.startswith("DOC_AUDIT_"):
                continue
            if "CONSISTENCY" in rule.rule_id:
                results.append(self._consistency_rule(rule, prior))
            if "COMPLETENESS" in rule.rule_id:
                results.append(self._completeness_rule(rule, ctx))
        return results

    def _consistency_rule(self, rule: ValidationRule, prior: list[ValidationResult]) -> ValidationResult:
        conflicts = [r for r in prior if r.reason_code == ReasonCode.CONFLICT]
        if conflicts:
            return ValidationResult(
                rule_id=rule.rule_id, field="consistency",
                status=ValidationStatus.FAILED, severity=Severity.CRITICAL,
                reason_code=ReasonCode.CONFLICT, confidence=1.0,
                message=f"{rule.description} - Found {len(conflicts)} consistency issue(s)",
            )
        return ValidationResult(
            rule_id=rule.rule_id, field="consistency",
            status=ValidationStatus.PASSED, severity=Severity.INFO,
            reason_code=ReasonCode.VALID, confidence=1.0, message=rule.description,
        )

    def _completeness_rule(self, rule: ValidationRule, ctx: _Context) -> ValidationResult:
        missing = [
            name for name, field_rule in ctx.template.field_rules.items()
            if isinstance(field_rule, FieldRule) and field_rule.required and name not in ctx.fields
        ]
        missing.extend(
            task.task_id for _, task in ctx.template.iter_checklist_tasks()
            if task.required and task.task_id not in ctx.fields
        )
        has_signature = any(name in ctx.fields for name in self.settings.signature_fields)

        if missing or not has_signature:
            parts = list(missing)
            if not has_signature:
                parts.append("signature")
            return ValidationResult(
                rule_id=rule.rule_id, field="completeness",
                status=ValidationStatus.FAILED, severity=Severity.MAJOR,
                reason_code=ReasonCode.INCOMPLETE_EVIDENCE, confidence=1.0,
                message=f"{rule.description} - Missing: {', '.join(parts)}",
            )
        return ValidationResult(
            rule_id=rule.rule_id, field="completeness",
            status=ValidationStatus.PASSED, severity=Severity.INFO,
            reason_code=ReasonCode.VALID, confidence=1.0, message=rule.description,
        )


# =============================================================================
# Validators
# =============================================================================

def run_validator(validator: Validator, value: Any) -> tuple[bool, str]:
    """Run one validator. Returns (passed, message)."""
    text = "" if value is None else str(value)
    if isinstance(validator, RegexValidator):
        if re.search(validator.pattern, text):
            return True, "Regex validation passed"
        return False, f"Value does not match pattern: {validator.pattern}"
    if isinstance(validator, RequiredValidator):
        if value is not None and text.strip():
            return True, "Required validation passed"
        return False, "Field is required but empty"
    if isinstance(validator, MinLengthValidator):
        if len(text) >= validator.min:
            return True, "Min length validation passed"
        return False, f"Value must be at least {validator.min} characters"
    raise TypeError(f"Unhandled validator kind: {type(validator).__name__}")


# =============================================================================
# Aggregation
# =============================================================================

def summarize(validated: list[ValidationResult]) -> AuditSummary:
    counts = Counter(r.status for r in validated)
    total = len(validated)
    conflicts = sum(1 for r in validated if r.reason_code == ReasonCode.CONFLICT)
    consistency = (total - conflicts) / total if total else 1.0
    completeness = counts[ValidationStatus.PASSED] / total if total else 0.0
    return AuditSummary(
        total_fields=total,
        passed_fields=counts[ValidationStatus.PASSED],
        failed_fields=counts[ValidationStatus.FAILED],
        warning_fields=counts[ValidationStatus.WARNING],
        skipped_fields=counts[ValidationStatus.SKIPPED],
        consistency_score=round(consistency, 2),
        completeness_score=round(completeness, 2),
    )


def determine_outcome(validated: list[ValidationResult]) -> DocumentOutcome:
    """Any critical or major failure fails the document."""
    for r in validated:
        if r.status == ValidationStatus.FAILED and r.severity in (Severity.CRITICAL, Severity.MAJOR):
            return DocumentOutcome.FAIL
    return DocumentOutcome.PASS


def determine_quality(summary: AuditSummary) -> DocumentationQuality:
    if summary.consistency_score < 0.9:
        return DocumentationQuality.INCONSISTENT
    if summary.completeness_score < 0.8:
        return DocumentationQuality.INCOMPLETE
    return DocumentationQuality.COMPLETE


def generate_next_steps(findings: list[ValidationResult]) -> list[str]:
    """Remediation lines grouped by reason code, sorted lexicographically."""
    by_code: dict[ReasonCode, list[str]] = {}
    for finding in findings:
        by_code.setdefault(finding.reason_code, []).append(finding.field)

    steps = []
    if ReasonCode.MISSING_FIELD in by_code:
        names = sorted(set(by_code[ReasonCode.MISSING_FIELD]))
        steps.append(f"Complete missing required fields: {', '.join(names)}")
    for code, text in NEXT_STEP_TEXT.items():
        if code in by_code:
            steps.append(text)
    return sorted(steps)


def count_severity_tiers(findings: list[ValidationResult]) -> dict[SeverityTier, int]:
    """Failed findings per canonical tier, every tier present."""
    counts = {tier: 0 for tier in SeverityTier}
    for finding in findings:
        if finding.status == ValidationStatus.FAILED:
            counts[severity_to_tier(finding.severity)] += 1
    return counts


def build_audit_result(
    template_id: str,
    validated: list[ValidationResult],
    formatting: list[ConditionalFormatting],
    template_version: Optional[str] = None,
) -> DocumentationAuditResult:
    findings = [r for r in validated if r.is_finding]
    summary = summarize(validated)
    return DocumentationAuditResult(
        template_id=template_id,
        template_version=template_version,
        document_outcome=determine_outcome(validated),
        documentation_quality=determine_quality(summary),
        validated_fields=validated,
        findings=findings,
        conditional_formatting=formatting,
        summary=summary,
        next_steps=generate_next_steps(findings),
        reason_codes=sorted({f.reason_code for f in findings}, key=lambda c: c.value),
        severity_tiers=count_severity_tiers(findings),
    )


def create_failure_result(
    template_id: str,
    message: str,
    template_version: Optional[str] = None,
) -> DocumentationAuditResult:
    """FAIL result for a missing template or an internal evaluation error."""
    finding = ValidationResult(
        rule_id="SYSTEM_ERROR",
        field="system",
        status=ValidationStatus.FAILED,
        severity=Severity.CRITICAL,
        reason_code=ReasonCode.PIPELINE_ERROR,
        message=message,
    )
    return DocumentationAuditResult(
        template_id=template_id,
        template_version=template_version,
        document_outcome=DocumentOutcome.FAIL,
        documentation_quality=DocumentationQuality.INCOMPLETE,
        validated_fields=[finding],
        findings=[finding],
        conditional_formatting=[],
        summary=AuditSummary(
            total_fields=1,
            passed_fields=0,
            failed_fields=1,
            warning_fields=0,
            skipped_fields=0,
            consistency_score=1.0,
            completeness_score=0.0,
        ),
        next_steps=["Resolve system error and retry"],
        reason_codes=[ReasonCode.PIPELINE_ERROR],
        severity_tiers=count_severity_tiers([finding]),
    )
