"""
jobaudit Fixture Models

Labeled input/expected-outcome cases used to regression-test a template
version before it may serve production traffic.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from .enums import FixtureErrorKind, FixtureOutcome, FixtureStatus


@dataclass(frozen=True)
class FixtureCase:
    """One labeled case. fixture_id doubles as the canonical sort key."""
    fixture_id: str
    template_id: str
    template_version: str
    description: str
    expected_outcome: FixtureOutcome
    expected_reason_codes: tuple[str, ...] = ()
    required_evidence_keys: tuple[str, ...] = ()
    required: bool = True
    input_data: dict[str, Any] = field(default_factory=dict)
    input_file: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "fixtureId": self.fixture_id,
            "templateId": self.template_id,
            "templateVersion": self.template_version,
            "description": self.description,
            "expectedOutcome": self.expected_outcome.value,
            "expectedReasonCodes": list(self.expected_reason_codes),
            "requiredEvidenceKeys": list(self.required_evidence_keys),
            "required": self.required,
            "inputData": self.input_data,
        }
        if self.input_file:
            data["inputFile"] = self.input_file
        return data


@dataclass(frozen=True)
class FixturePack:
    """Hash-stamped, fixture_id-ordered cases bound to one template version."""
    pack_id: str
    template_id: str
    template_version: str
    fixtures: tuple[FixtureCase, ...]
    hash: str
    created_at: Optional[str] = None


@dataclass(frozen=True)
class ValidationOutput:
    """What a validator returns for one fixture case."""
    outcome: FixtureOutcome
    reason_codes: tuple[str, ...] = ()
    evidence_keys: tuple[str, ...] = ()
    validated_fields: tuple[dict[str, Any], ...] = ()


@dataclass
class FixtureResult:
    """
    Comparison of one case's actual output against its expectation.

    Each failure class has its own field so tooling can react per class;
    errors carries the same information as human-readable lines.
    """
    fixture_id: str
    status: FixtureStatus
    expected_outcome: FixtureOutcome
    actual_outcome: FixtureOutcome
    required: bool = True
    expected_reason_codes: list[str] = field(default_factory=list)
    actual_reason_codes: list[str] = field(default_factory=list)
    missing_reason_codes: list[str] = field(default_factory=list)
    unexpected_reason_codes: list[str] = field(default_factory=list)
    non_canonical_reason_codes: list[str] = field(default_factory=list)
    required_evidence_keys: list[str] = field(default_factory=list)
    present_evidence_keys: list[str] = field(default_factory=list)
    missing_evidence_keys: list[str] = field(default_factory=list)
    error_kind: Optional[FixtureErrorKind] = None
    duration_ms: float = 0.0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fixtureId": self.fixture_id,
            "status": self.status.value,
            "required": self.required,
            "expectedOutcome": self.expected_outcome.value,
            "actualOutcome": self.actual_outcome.value,
            "expectedReasonCodes": self.expected_reason_codes,
            "actualReasonCodes": self.actual_reason_codes,
            "missingReasonCodes": self.missing_reason_codes,
            "unexpectedReasonCodes": self.unexpected_reason_codes,
            "nonCanonicalReasonCodes": self.non_canonical_reason_codes,
            "requiredEvidenceKeys": self.required_evidence_keys,
            "presentEvidenceKeys": self.present_evidence_keys,
            "missingEvidenceKeys": self.missing_evidence_keys,
            "errorKind": self.error_kind.value if self.error_kind else None,
            "durationMs": round(self.duration_ms, 3),
            "errors": self.errors,
        }


@dataclass
class FixturePackRunResult:
    """Aggregate of a pack run. results follow the pack's canonical order."""
    pack_id: str
    template_id: str
    template_version: str
    pack_hash: str
    run_id: str
    started_at: datetime
    completed_at: datetime
    results: list[FixtureResult]
    passed: int
    failed: int
    errors: int
    ordering_stable: bool
    all_canonical: bool
    evidence_complete: bool
    overall_status: FixtureStatus
    required_cases_failed: list[str] = field(default_factory=list)

    @property
    def total_fixtures(self) -> int:
        return len(self.results)

    def to_dict(self) -> dict[str, Any]:
        return {
            "packId": self.pack_id,
            "templateId": self.template_id,
            "templateVersion": self.template_version,
            "packHash": self.pack_hash,
            "runId": self.run_id,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
            "totalFixtures": self.total_fixtures,
            "passed": self.passed,
            "failed": self.failed,
            "errors": self.errors,
            "results": [r.to_dict() for r in self.results],
            "orderingStable": self.ordering_stable,
            "allCanonical": self.all_canonical,
            "evidenceComplete": self.evidence_complete,
            "overallStatus": self.overall_status.value,
            "requiredCasesFailed": self.required_cases_failed,
        }


@dataclass(frozen=True)
class ActivationGateResult:
    """All-or-nothing verdict on whether a fixture run permits activation."""
    can_activate: bool
    reasons: tuple[str, ...]
    template_id: str
    template_version: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "canActivate": self.can_activate,
            "reasons": list(self.reasons),
            "templateId": self.template_id,
            "templateVersion": self.template_version,
        }


@dataclass(frozen=True)
class FixtureCoverage:
    required_types: tuple[str, ...]
    present_types: tuple[str, ...]
    missing_types: tuple[str, ...]


@dataclass(frozen=True)
class FixturePackValidation:
    """Structural errors and coverage warnings for a fixture pack."""
    valid: bool
    errors: tuple[str, ...]
    warnings: tuple[str, ...]
    coverage: FixtureCoverage
