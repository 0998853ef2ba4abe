"""
jobaudit Fixture Matrix Runner

Replays labeled fixture cases through a validator and compares actual
against expected outcome, reason codes and evidence.

Key features:
- Per-case time budget enforced with asyncio.wait on the validator task;
  a late result is cancelled (async validators) or ignored (sync validators in a thread)
- Pack-level wall-clock budget, independent of the per-case budgets
- Bounded worker pool (asyncio.Semaphore) with results always reported in
  the pack's canonical case order
- Timeouts and validator exceptions become typed error results; they never
  abort the pack run
- All-or-nothing activation gate over a pack run

Usage:
    runner = FixtureMatrixRunner(make_rules_engine_validator(engine))
    run = asyncio.run(runner.run_pack(pack))
    gate = check_activation_gate(run)
    if not gate.can_activate:
        print("\\n".join(gate.reasons))
"""
from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable, Mapping, Optional, Union
from uuid import uuid4

from ..config import Settings
from ..models import (
    ActivationGateResult,
    CIStrategy,
    ExtractedField,
    FixtureCase,
    FixtureCoverage,
    FixtureErrorKind,
    FixtureOutcome,
    FixturePack,
    FixturePackRunResult,
    FixturePackValidation,
    FixtureResult,
    FixtureStatus,
    ReasonCode,
    ValidationOutput,
)
from ..packs.fixtures import compute_fixture_pack_hash
from ..semantics import non_canonical_codes

if TYPE_CHECKING:
    from .rules_engine import ConditionalRulesEngine

logger = logging.getLogger(__name__)


ValidatorResult = Union[ValidationOutput, Mapping[str, Any]]
ValidateFn = Callable[[FixtureCase], Union[ValidatorResult, Awaitable[ValidatorResult]]]


# =============================================================================
# Required Fixture Types
# =============================================================================

@dataclass(frozen=True)
class FixtureType:
    """A case category every template's fixture pack should cover."""
    type: str
    description: str
    expected_outcome: FixtureOutcome
    expected_reason_codes: tuple[str, ...]
    keywords: tuple[str, ...] = ()


REQUIRED_FIXTURE_TYPES: tuple[FixtureType, ...] = (
    FixtureType(
        type="PASS",
        description="Document that passes all validation rules",
        expected_outcome=FixtureOutcome.PASS,
        expected_reason_codes=(),
    ),
    FixtureType(
        type="FAIL_MISSING_JOB_REFERENCE",
        description="Document missing job reference field",
        expected_outcome=FixtureOutcome.FAIL,
        expected_reason_codes=(ReasonCode.MISSING_FIELD.value,),
        keywords=("job", "reference"),
    ),
    FixtureType(
        type="FAIL_INVALID_DATE",
        description="Document with invalid date/expiry format",
        expected_outcome=FixtureOutcome.FAIL,
        expected_reason_codes=(ReasonCode.INVALID_FORMAT.value, ReasonCode.OUT_OF_POLICY.value),
        keywords=("date", "expiry"),
    ),
    FixtureType(
        type="FAIL_MISSING_SIGNATURE",
        description="Document missing engineer sign-off",
        expected_outcome=FixtureOutcome.FAIL,
        expected_reason_codes=(ReasonCode.MISSING_FIELD.value, ReasonCode.INCOMPLETE_EVIDENCE.value),
        keywords=("sign",),
    ),
    FixtureType(
        type="FAIL_TICKBOX_MISALIGNMENT",
        description="Document with tickbox/checklist misalignment",
        expected_outcome=FixtureOutcome.FAIL,
        expected_reason_codes=(ReasonCode.OUT_OF_POLICY.value, ReasonCode.CONFLICT.value),
        keywords=("tickbox", "checklist"),
    ),
)


def classify_fixture(case: FixtureCase) -> Optional[str]:
    """
    Which required fixture type a case covers, if any.

    A failing case counts when it expects one of the type's reason codes and
    its description mentions one of the type's keywords.
    """
    if case.expected_outcome == FixtureOutcome.PASS:
        return "PASS"
    description = case.description.lower()
    for fixture_type in REQUIRED_FIXTURE_TYPES:
        if fixture_type.expected_outcome != case.expected_outcome:
            continue
        if not set(fixture_type.expected_reason_codes) & set(case.expected_reason_codes):
            continue
        if any(k in description for k in fixture_type.keywords):
            return fixture_type.type
    return None


def validate_fixture_pack(pack: FixturePack) -> FixturePackValidation:
    """Structural errors plus coverage warnings against REQUIRED_FIXTURE_TYPES."""
    errors: list[str] = []
    warnings: list[str] = []

    if not pack.pack_id:
        errors.append("packId is required")
    if not pack.template_id:
        errors.append("templateId is required")
    if not pack.template_version:
        errors.append("templateVersion is required")

    ids = [c.fixture_id for c in pack.fixtures]
    if ids != sorted(ids):
        errors.append("Fixtures are not in canonical fixtureId order")
    if pack.hash != compute_fixture_pack_hash(pack.fixtures):
        errors.append("Pack hash does not match its fixtures")

    present: set[str] = set()
    for case in pack.fixtures:
        if not case.fixture_id:
            errors.append("Each fixture must have a fixtureId")
        if case.template_id != pack.template_id or case.template_version != pack.template_version:
            errors.append(f"Fixture {case.fixture_id}: bound to a different template version")
        non_canonical = non_canonical_codes(case.expected_reason_codes)
        if non_canonical:
            errors.append(
                f"Fixture {case.fixture_id}: non-canonical expected reason codes: "
                f"{', '.join(non_canonical)}"
            )
        fixture_type = classify_fixture(case)
        if fixture_type:
            present.add(fixture_type)

    required_types = tuple(t.type for t in REQUIRED_FIXTURE_TYPES)
    missing = tuple(t for t in required_types if t not in present)
    if missing:
        warnings.append(f"Missing fixture types: {', '.join(missing)}")

    return FixturePackValidation(
        valid=not errors,
        errors=tuple(errors),
        warnings=tuple(warnings),
        coverage=FixtureCoverage(
            required_types=required_types,
            present_types=tuple(t for t in required_types if t in present),
            missing_types=missing,
        ),
    )


def filter_packs_for_ci(
    packs: Iterable[FixturePack],
    strategy: CIStrategy,
    changed_templates: Optional[Iterable[str]] = None,
) -> list[FixturePack]:
    """
    Choose which packs a CI run executes.

    nightly: every pack.
    pr: packs for changed templates; with no changes, the positive suite
    (packs that contain at least one PASS case).
    """
    packs = sorted(packs, key=lambda p: (p.template_id, p.pack_id))
    if strategy == CIStrategy.NIGHTLY:
        return packs
    changed = set(changed_templates or ())
    if not changed:
        return [
            p for p in packs
            if any(c.expected_outcome == FixtureOutcome.PASS for c in p.fixtures)
        ]
    return [p for p in packs if p.template_id in changed]


# =============================================================================
# Runner
# =============================================================================

def _coerce_output(raw: ValidatorResult) -> ValidationOutput:
    """Accept a ValidationOutput or its camelCase mapping form."""
    if isinstance(raw, ValidationOutput):
        return raw
    if isinstance(raw, Mapping):
        return ValidationOutput(
            outcome=FixtureOutcome(raw["outcome"]),
            reason_codes=tuple(str(c) for c in raw.get("reasonCodes", ())),
            evidence_keys=tuple(str(k) for k in raw.get("evidenceKeys", ())),
            validated_fields=tuple(raw.get("validatedFields", ())),
        )
    raise TypeError(f"Validator returned {type(raw).__name__}, expected ValidationOutput")


class FixtureMatrixRunner:
    """
    Runs fixture cases and packs under time budgets.

    The validator may be a coroutine function or a plain function; plain
    functions run in a worker thread so a slow one cannot block the loop.
    A thread cannot be interrupted, so a timed-out sync validator finishes
    in the background and its result is discarded.
    """

    def __init__(
        self,
        validate: ValidateFn,
        case_budget_ms: float = 30_000,
        pack_budget_ms: float = 120_000,
        max_concurrency: int = 1,
    ) -> None:
        if case_budget_ms <= 0 or pack_budget_ms <= 0:
            raise ValueError("Fixture budgets must be positive")
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._validate = validate
        self.case_budget_ms = case_budget_ms
        self.pack_budget_ms = pack_budget_ms
        self.max_concurrency = max_concurrency

    @classmethod
    def from_settings(cls, validate: ValidateFn, settings: Settings) -> "FixtureMatrixRunner":
        return cls(
            validate,
            case_budget_ms=settings.fixture_case_budget_ms,
            pack_budget_ms=settings.fixture_pack_budget_ms,
            max_concurrency=settings.fixture_max_concurrency,
        )

    async def _invoke(self, case: FixtureCase) -> ValidatorResult:
        if inspect.iscoroutinefunction(self._validate):
            return await self._validate(case)
        result = await asyncio.to_thread(self._validate, case)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def run_fixture(self, case: FixtureCase,
                          budget_ms: Optional[float] = None) -> FixtureResult:
        """
        Run one case under min(budget_ms, case budget).

        Never raises for validator problems; cancellation of the caller
        still propagates.
        """
        budget = min(budget_ms, self.case_budget_ms) if budget_ms is not None else self.case_budget_ms
        start = time.perf_counter()
        # The budget is judged on the task, so a TimeoutError raised by the
        # validator itself stays a validator exception
        task = asyncio.ensure_future(self._invoke(case))
        try:
            done, _ = await asyncio.wait({task}, timeout=budget / 1000)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if not done:
            task.cancel()
            duration = (time.perf_counter() - start) * 1000
            logger.warning(
                "Fixture %s exceeded time budget (%.0f ms)", case.fixture_id, budget,
                extra={"fixture_id": case.fixture_id, "duration_ms": round(duration, 3)},
            )
            return _error_result(
                case, FixtureErrorKind.TIME_BUDGET_EXCEEDED,
                f"Time budget exceeded ({budget:.0f} ms)", duration,
            )

        try:
            output = _coerce_output(task.result())
        except Exception as e:
            duration = (time.perf_counter() - start) * 1000
            logger.warning(
                "Fixture %s validator raised %s: %s", case.fixture_id, type(e).__name__, e,
                extra={"fixture_id": case.fixture_id},
            )
            return _error_result(
                case, FixtureErrorKind.VALIDATOR_EXCEPTION,
                f"Validation error: {type(e).__name__}: {e}", duration,
            )

        duration = (time.perf_counter() - start) * 1000
        return _compare(case, output, duration)

    async def run_pack(self, pack: FixturePack) -> FixturePackRunResult:
        """
        Run every case of a pack.

        Cases start in canonical order; once the pack budget is spent the
        remaining cases are reported as PACK_BUDGET_EXCEEDED without running.
        """
        run_id = f"run_{uuid4().hex[:12]}"
        started_at = datetime.now(timezone.utc)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.pack_budget_ms / 1000
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run_one(case: FixtureCase) -> FixtureResult:
            async with semaphore:
                remaining_ms = (deadline - loop.time()) * 1000
                if remaining_ms <= 0:
                    return _error_result(
                        case, FixtureErrorKind.PACK_BUDGET_EXCEEDED,
                        f"Pack time budget exceeded ({self.pack_budget_ms:.0f} ms)", 0.0,
                    )
                return await self.run_fixture(case, budget_ms=remaining_ms)

        results = list(await asyncio.gather(*(run_one(c) for c in pack.fixtures)))
        completed_at = datetime.now(timezone.utc)

        passed = sum(1 for r in results if r.status == FixtureStatus.PASSED)
        failed = sum(1 for r in results if r.status == FixtureStatus.FAILED)
        errors = sum(1 for r in results if r.status == FixtureStatus.ERROR)
        ids = [r.fixture_id for r in results]

        run = FixturePackRunResult(
            pack_id=pack.pack_id,
            template_id=pack.template_id,
            template_version=pack.template_version,
            pack_hash=pack.hash,
            run_id=run_id,
            started_at=started_at,
            completed_at=completed_at,
            results=results,
            passed=passed,
            failed=failed,
            errors=errors,
            ordering_stable=ids == sorted(ids),
            all_canonical=all(not r.non_canonical_reason_codes for r in results),
            evidence_complete=all(not r.missing_evidence_keys for r in results),
            overall_status=FixtureStatus.PASSED if failed == 0 and errors == 0 else FixtureStatus.FAILED,
            required_cases_failed=[
                r.fixture_id for r in results
                if r.required and r.status != FixtureStatus.PASSED
            ],
        )
        logger.info(
            "Fixture pack %s: %d passed, %d failed, %d errors",
            pack.pack_id, passed, failed, errors,
            extra={
                "run_id": run_id,
                "pack_id": pack.pack_id,
                "template_id": pack.template_id,
                "duration_ms": round((completed_at - started_at).total_seconds() * 1000, 3),
            },
        )
        return run


# =============================================================================
# Comparison
# =============================================================================

def _compare(case: FixtureCase, output: ValidationOutput, duration_ms: float) -> FixtureResult:
    expected = list(case.expected_reason_codes)
    actual = list(dict.fromkeys(output.reason_codes))
    present_keys = list(dict.fromkeys(output.evidence_keys))

    missing_codes = [c for c in expected if c not in actual]
    # With no expectation every code is acceptable
    unexpected = [c for c in actual if c not in expected] if expected else []
    non_canonical = non_canonical_codes(actual)
    missing_keys = [k for k in case.required_evidence_keys if k not in present_keys]
    outcome_match = output.outcome == case.expected_outcome

    errors: list[str] = []
    if not outcome_match:
        errors.append(
            f"Outcome mismatch: expected {case.expected_outcome.value}, got {output.outcome.value}"
        )
    if missing_codes:
        errors.append(f"Missing reason codes: {', '.join(missing_codes)}")
    if non_canonical:
        errors.append(f"Non-canonical reason codes: {', '.join(non_canonical)}")
    if missing_keys:
        errors.append(f"Missing evidence keys: {', '.join(missing_keys)}")

    return FixtureResult(
        fixture_id=case.fixture_id,
        status=FixtureStatus.FAILED if errors else FixtureStatus.PASSED,
        expected_outcome=case.expected_outcome,
        actual_outcome=output.outcome,
        required=case.required,
        expected_reason_codes=expected,
        actual_reason_codes=actual,
        missing_reason_codes=missing_codes,
        unexpected_reason_codes=unexpected,
        non_canonical_reason_codes=non_canonical,
        required_evidence_keys=list(case.required_evidence_keys),
        present_evidence_keys=present_keys,
        missing_evidence_keys=missing_keys,
        duration_ms=duration_ms,
        errors=errors,
    )


def _error_result(case: FixtureCase, kind: FixtureErrorKind, message: str,
                  duration_ms: float) -> FixtureResult:
    return FixtureResult(
        fixture_id=case.fixture_id,
        status=FixtureStatus.ERROR,
        expected_outcome=case.expected_outcome,
        actual_outcome=FixtureOutcome.ERROR,
        required=case.required,
        expected_reason_codes=list(case.expected_reason_codes),
        missing_reason_codes=list(case.expected_reason_codes),
        required_evidence_keys=list(case.required_evidence_keys),
        missing_evidence_keys=list(case.required_evidence_keys),
        error_kind=kind,
        duration_ms=duration_ms,
        errors=[message],
    )


# =============================================================================
# Activation Gate
# =============================================================================

def check_activation_gate(run: FixturePackRunResult) -> ActivationGateResult:
    """
    All-or-nothing activation verdict.

    Blocked by any failed or errored case, any non-canonical reason code,
    any missing evidence key, or an empty run.
    """
    reasons: list[str] = []
    if not run.results:
        reasons.append("Fixture pack has no cases")
    if run.failed > 0:
        reasons.append(f"{run.failed} fixture(s) failed")
    if run.errors > 0:
        reasons.append(f"{run.errors} fixture(s) had errors")
    if not run.all_canonical:
        reasons.append("Non-canonical reason codes detected")
    if not run.evidence_complete:
        reasons.append("Missing required evidence keys")

    can_activate = not reasons
    if can_activate:
        reasons.append("All fixtures passed with canonical reason codes and complete evidence")
    return ActivationGateResult(
        can_activate=can_activate,
        reasons=tuple(reasons),
        template_id=run.template_id,
        template_version=run.template_version,
    )


# =============================================================================
# Rules Engine Adapter
# =============================================================================

def fields_from_input(input_data: Mapping[str, Any]) -> list[ExtractedField]:
    """
    Extracted fields from a fixture's inputData.

    Accepts either "extractedFields" (list of {field, value, confidence})
    or "fields" (plain name -> value mapping, confidence 1.0).
    """
    if "extractedFields" in input_data:
        return [ExtractedField.from_dict(item) for item in input_data["extractedFields"]]
    fields = input_data.get("fields", {})
    return [ExtractedField(field=str(name), value=value) for name, value in fields.items()]


def make_rules_engine_validator(engine: "ConditionalRulesEngine") -> Callable[[FixtureCase], ValidationOutput]:
    """
    Adapt the rules engine into a fixture validator.

    The case's exact template version is looked up in the engine's registry
    regardless of lifecycle status, so fixtures can gate a template that is
    not active yet.
    """
    def validate(case: FixtureCase) -> ValidationOutput:
        registration = engine.registry.get_registration(case.template_id)
        if registration is None or registration.template is None:
            raise LookupError(f"Template {case.template_id} is not registered or failed to parse")
        template = registration.template
        if template.version != case.template_version:
            raise LookupError(
                f"Template {case.template_id} is v{template.version}, "
                f"fixture expects v{case.template_version}"
            )
        result = engine.evaluate_template(template, fields_from_input(case.input_data))
        return ValidationOutput(
            outcome=FixtureOutcome(result.document_outcome.value),
            reason_codes=tuple(c.value for c in result.reason_codes),
            evidence_keys=tuple(result.evidence_keys()),
            validated_fields=tuple(
                {"field": r.field, "status": r.status.value, "reasonCode": r.reason_code.value}
                for r in result.validated_fields
            ),
        )

    return validate
