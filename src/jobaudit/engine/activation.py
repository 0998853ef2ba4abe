"""
jobaudit Activation Gates

Preconditions a template version must satisfy before it can be activated.

Key features:
- Selection config completeness (the template must be recognizable)
- Critical fields declared in the template
- At least one validation rule
- ROI hints valid
- Fixture gate: a passing fixture run for exactly this template version

Every blocking issue carries a fix path: the operator always learns what
to change, never just that activation failed.

Deployments tighten activation with an ActivationPolicy (fixture run
required, minimum selection tokens, critical ROI presence). Each attempt can
be recorded as a versioned activation report:

    policy = ActivationPolicy.from_settings(settings)
    checks = check_activation_policy(template, critical_fields, run, policy)
    report = create_activation_report(template, checks, run, policy)
    write_activation_report(report, "artifacts/")
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from ..canon import canonical_json, content_hash
from ..config import Settings
from ..models import FieldRule, FixturePackRunResult, RoiDefinition, SelectionCriteria, Template
from .fixture_runner import check_activation_gate
from .roi import validate_roi

logger = logging.getLogger(__name__)

ACTIVATION_REPORT_VERSION = "1.0.0"


# Fields every activated job-sheet template must declare, unless the pack
# names its own critical fields
DEFAULT_CRITICAL_FIELDS = (
    "jobReference",
    "assetId",
    "date",
    "engineerSignOff",
)

# Missing these only warns
RECOMMENDED_FIELDS = (
    "expiryDate",
    "complianceTickboxes",
    "customerSignature",
)

# ROI regions an activation policy may insist on
CRITICAL_ROI_NAMES = (
    "jobReference",
    "assetId",
    "date",
    "expiryDate",
    "tickboxBlock",
    "signatureBlock",
)


# =============================================================================
# Results
# =============================================================================

@dataclass(frozen=True)
class ActivationIssue:
    """One reason activation is blocked (or a warning)."""
    code: str
    message: str
    fix_path: Optional[str] = None
    field: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.fix_path:
            data["fixPath"] = self.fix_path
        if self.field:
            data["field"] = self.field
        return data


@dataclass
class ActivationPreconditionResult:
    allowed: bool = True
    blocking_issues: list[ActivationIssue] = field(default_factory=list)
    warnings: list[ActivationIssue] = field(default_factory=list)

    def block(self, issue: ActivationIssue) -> None:
        self.blocking_issues.append(issue)
        self.allowed = False

    def extend(self, other: "ActivationPreconditionResult") -> None:
        for issue in other.blocking_issues:
            self.block(issue)
        self.warnings.extend(other.warnings)


@dataclass(frozen=True)
class ActivationPolicy:
    """
    Deployment-level activation requirements on top of the preconditions.

    The defaults add nothing: a fixture run is only checked when supplied,
    any selection fingerprint is enough and ROI hints stay optional.
    """
    require_fixture_run: bool = False
    min_selection_tokens: int = 0
    require_critical_rois: bool = False
    allowed_missing_rois: tuple[str, ...] = ()

    @classmethod
    def from_settings(cls, settings: Settings) -> "ActivationPolicy":
        return cls(
            require_fixture_run=settings.require_fixture_gate,
            min_selection_tokens=settings.activation_min_selection_tokens,
            require_critical_rois=settings.activation_require_critical_rois,
            allowed_missing_rois=tuple(settings.activation_allowed_missing_rois),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "requireFixtureRun": self.require_fixture_run,
            "minSelectionTokens": self.min_selection_tokens,
            "requireCriticalRois": self.require_critical_rois,
            "allowedMissingRois": sorted(self.allowed_missing_rois),
        }


# =============================================================================
# Checks
# =============================================================================

def check_activation_preconditions(
    template: Template,
    critical_fields: Optional[Iterable[str]] = None,
) -> ActivationPreconditionResult:
    """
    Check the static preconditions for activating a template.

    Args:
        template: Parsed template
        critical_fields: Pack-level critical fields; defaults apply when empty
    """
    result = ActivationPreconditionResult()

    selection = template.selection
    if selection is None or selection.is_empty:
        result.block(ActivationIssue(
            code="SELECTION_CONFIG_EMPTY",
            message=(
                "Selection config must have at least one of: "
                "requiredTokensAll, requiredTokensAny, or formCodeRegex"
            ),
            fix_path=(
                "Add tokens to selection.requiredTokensAll or requiredTokensAny, "
                "or add a selection.formCodeRegex pattern"
            ),
        ))

    declared = template.declared_field_names()
    critical = tuple(critical_fields or ()) or DEFAULT_CRITICAL_FIELDS
    for name in critical:
        if name not in declared:
            result.block(ActivationIssue(
                code="MISSING_CRITICAL_FIELD",
                message=f"Critical field '{name}' is missing from template",
                fix_path=f"Add a field rule for '{name}' to fieldRules",
                field=name,
            ))
            continue
        rule = template.field_rules.get(name)
        if isinstance(rule, FieldRule) and not rule.required:
            result.warnings.append(ActivationIssue(
                code="CRITICAL_FIELD_OPTIONAL",
                message=f"Critical field '{name}' is not marked required",
                field=name,
            ))

    for name in RECOMMENDED_FIELDS:
        if name not in declared:
            result.warnings.append(ActivationIssue(
                code="MISSING_RECOMMENDED_FIELD",
                message=f"Recommended field '{name}' is missing from template",
                field=name,
            ))

    if not template.validation_rules:
        result.block(ActivationIssue(
            code="NO_VALIDATION_RULES",
            message="Template must have at least one validation rule",
            fix_path="Add at least one rule to validationRules",
        ))

    if template.roi_optional is not None:
        roi = validate_roi(template.roi_optional)
        for error in roi.errors:
            result.block(ActivationIssue(
                code="ROI_INVALID",
                message=error,
                fix_path="Correct roiOptional so regions are named, sized and non-overlapping",
            ))
        for warning in roi.warnings:
            result.warnings.append(ActivationIssue(code="ROI_WARNING", message=warning))

    return result


def check_fixture_gate(
    template: Template,
    run: Optional[FixturePackRunResult],
    required: bool,
) -> ActivationPreconditionResult:
    """
    Translate a fixture run into activation issues.

    With no run, activation is blocked only when required is set.
    """
    result = ActivationPreconditionResult()
    if run is None:
        if required:
            result.block(ActivationIssue(
                code="FIXTURES_NOT_RUN",
                message="No fixture run supplied for this template version",
                fix_path=f"Run the fixture pack for {template.template_id} "
                         f"v{template.version} and pass the run result",
            ))
        return result

    if run.template_id != template.template_id or run.template_version != template.version:
        result.block(ActivationIssue(
            code="FIXTURE_TEMPLATE_MISMATCH",
            message=(
                f"Fixture run targets {run.template_id} v{run.template_version}, "
                f"not {template.template_id} v{template.version}"
            ),
            fix_path="Run the fixture pack bound to this exact template version",
        ))
        return result

    gate = check_activation_gate(run)
    if not gate.can_activate:
        for reason in gate.reasons:
            result.block(ActivationIssue(
                code="FIXTURE_GATE_FAILED",
                message=reason,
                fix_path="Fix the template or fixtures until every case passes "
                         "with canonical reason codes and complete evidence",
            ))
    return result


def format_activation_error(result: ActivationPreconditionResult) -> str:
    """Render blocking issues and fix paths as a PIPELINE_ERROR message."""
    issues = "\n".join(f"- {i.code}: {i.message}" for i in result.blocking_issues)
    fixes = "\n".join(
        f"  {i.code}{':' + i.field if i.field else ''}: {i.fix_path}"
        for i in result.blocking_issues
        if i.fix_path
    )
    return (
        "PIPELINE_ERROR: Activation preconditions not met.\n\n"
        f"Blocking Issues:\n{issues}\n\nFix Paths:\n{fixes}"
    )


# =============================================================================
# Policy
# =============================================================================

def missing_critical_rois(roi: Optional[RoiDefinition]) -> list[str]:
    """Critical ROI names with no region declared, in CRITICAL_ROI_NAMES order."""
    declared = {r.name for r in roi.regions} if roi is not None else set()
    return [name for name in CRITICAL_ROI_NAMES if name not in declared]


def _required_token_count(selection: Optional[SelectionCriteria]) -> int:
    if selection is None:
        return 0
    return len(selection.required_tokens_all) + len(selection.required_tokens_any)


def check_activation_policy(
    template: Template,
    critical_fields: Optional[Iterable[str]] = None,
    run: Optional[FixturePackRunResult] = None,
    policy: Optional[ActivationPolicy] = None,
) -> ActivationPreconditionResult:
    """
    Preconditions, fixture gate and the deployment policy in one result.

    Used by TemplateRegistry.activate_template and by activation reports so
    both always agree on what blocks.
    """
    policy = policy or ActivationPolicy()
    result = check_activation_preconditions(template, critical_fields)
    result.extend(check_fixture_gate(template, run, required=policy.require_fixture_run))

    if policy.require_critical_rois:
        missing = missing_critical_rois(template.roi_optional)
        blocked = [n for n in missing if n not in policy.allowed_missing_rois]
        allowed = [n for n in missing if n in policy.allowed_missing_rois]
        if blocked:
            result.block(ActivationIssue(
                code="MISSING_CRITICAL_ROIS",
                message=f"Missing critical ROIs: {', '.join(blocked)}",
                fix_path="Add roiOptional regions for every critical ROI",
            ))
        if allowed:
            result.warnings.append(ActivationIssue(
                code="ALLOWED_MISSING_ROIS",
                message=f"ROIs allowed to be missing by policy: {', '.join(allowed)}",
            ))

    tokens = _required_token_count(template.selection)
    if tokens < policy.min_selection_tokens:
        result.block(ActivationIssue(
            code="INSUFFICIENT_SELECTION_TOKENS",
            message=(
                f"Selection config has {tokens} required token(s), "
                f"minimum {policy.min_selection_tokens} required"
            ),
            fix_path="Add tokens to selection.requiredTokensAll or requiredTokensAny",
        ))

    return result


# =============================================================================
# Activation Report
# =============================================================================

def _fixture_summary(run: Optional[FixturePackRunResult]) -> dict[str, Any]:
    if run is None:
        return {
            "hasFixtureRun": False,
            "packId": None,
            "packHash": None,
            "totalCases": 0,
            "passedCases": 0,
            "failedCases": 0,
            "errorCases": 0,
            "overallResult": "NOT_RUN",
        }
    gate = check_activation_gate(run)
    return {
        "hasFixtureRun": True,
        "packId": run.pack_id,
        "packHash": run.pack_hash,
        "totalCases": run.total_fixtures,
        "passedCases": run.passed,
        "failedCases": run.failed,
        "errorCases": run.errors,
        "overallResult": "PASS" if gate.can_activate else "FAIL",
    }


def create_activation_report(
    template: Template,
    checks: ActivationPreconditionResult,
    run: Optional[FixturePackRunResult] = None,
    policy: Optional[ActivationPolicy] = None,
) -> dict[str, Any]:
    """
    Versioned, persistable record of an activation decision.

    Run ids and timestamps are excluded so the same template, fixture pack
    and policy always yield the same report.
    """
    policy = policy or ActivationPolicy()
    missing_rois = missing_critical_rois(template.roi_optional)
    selection = template.selection or SelectionCriteria()

    return {
        "reportVersion": ACTIVATION_REPORT_VERSION,
        "templateId": template.template_id,
        "templateVersion": template.version,
        "templateHash": content_hash(template.to_dict()),
        "allowed": checks.allowed,
        "policy": policy.to_dict(),
        "policyCheck": {
            "allowed": checks.allowed,
            "violations": [i.to_dict() for i in checks.blocking_issues],
            "warnings": [w.to_dict() for w in checks.warnings],
        },
        "fixtureSummary": _fixture_summary(run),
        "roiPresence": {
            "hasRoiConfig": template.roi_optional is not None,
            "criticalRoisPresent": [n for n in CRITICAL_ROI_NAMES if n not in missing_rois],
            "criticalRoisMissing": missing_rois,
            "allowedMissingRois": [n for n in missing_rois if n in policy.allowed_missing_rois],
        },
        "selectionConfigSummary": {
            "hasRequiredTokens": _required_token_count(selection) > 0,
            "hasFormCodeRegex": bool(selection.form_code_regex),
            "tokenCount": _required_token_count(selection) + len(selection.optional_tokens),
        },
    }


def write_activation_report(report: dict[str, Any], directory: Union[str, Path]) -> Path:
    """Persist as activation-<templateId>-v<version>.json; returns the path."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"activation-{report['templateId']}-v{report['templateVersion']}.json"
    path.write_text(canonical_json(report), encoding="utf-8")
    logger.debug("Wrote activation report %s", path)
    return path
