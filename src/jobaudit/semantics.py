"""
jobaudit Canonical Semantics

The closed vocabularies every pipeline output is checked against, plus the
selection safety policy that turns ranked scores into a decision.

Key features:
- Closed reason-code set with membership checks
- Canonical S0-S3 severity tiers; legacy free-text tiers are rejected
  unless explicitly translated
- Confidence bands and the AUTO_SELECT / REVIEW_QUEUE / HARD_STOP policy

Usage:
    from jobaudit.semantics import is_canonical_reason_code, make_selection_decision

    bad = non_canonical_codes(["MISSING_FIELD", "FIELD_MISSING"])
    decision, gap = make_selection_decision(valid_candidates, None, SelectionPolicy())
"""
from __future__ import annotations

import math
from typing import Any, Iterable, Optional, Sequence, Union

from .exceptions import InvalidSeverityTierError
from .models.enums import ConfidenceBand, ReasonCode, Severity, SeverityTier
from .models.selection import (
    AutoSelect,
    HardStop,
    ReviewQueue,
    SelectionDecision,
    SelectionPolicy,
    SelectionScore,
)


# =============================================================================
# Reason Codes
# =============================================================================

CANONICAL_REASON_CODES: frozenset[str] = frozenset(code.value for code in ReasonCode)


def is_canonical_reason_code(code: Any) -> bool:
    """True if code (string or ReasonCode) belongs to the closed set."""
    if isinstance(code, ReasonCode):
        return True
    return isinstance(code, str) and code in CANONICAL_REASON_CODES


def non_canonical_codes(codes: Iterable[Any]) -> list[str]:
    """Codes outside the closed set, in input order, without duplicates."""
    seen: list[str] = []
    for code in codes:
        value = code.value if isinstance(code, ReasonCode) else str(code)
        if not is_canonical_reason_code(code) and value not in seen:
            seen.append(value)
    return seen


# =============================================================================
# Severity Tiers
# =============================================================================

SEVERITY_TO_TIER: dict[Severity, SeverityTier] = {
    Severity.CRITICAL: SeverityTier.S0,
    Severity.MAJOR: SeverityTier.S1,
    Severity.MINOR: SeverityTier.S2,
    Severity.INFO: SeverityTier.S3,
}

# Free-text vocabularies found in older reports
LEGACY_TIER_TRANSLATIONS: dict[str, SeverityTier] = {
    "critical": SeverityTier.S0,
    "blocker": SeverityTier.S0,
    "high": SeverityTier.S1,
    "major": SeverityTier.S1,
    "medium": SeverityTier.S2,
    "minor": SeverityTier.S2,
    "low": SeverityTier.S3,
    "info": SeverityTier.S3,
}


def severity_to_tier(severity: Severity) -> SeverityTier:
    return SEVERITY_TO_TIER[severity]


def parse_severity_tier(value: Union[str, SeverityTier]) -> SeverityTier:
    """
    Parse a canonical tier key.

    Only "S0".."S3" are accepted. Legacy words such as "high" are rejected
    with a hint; callers that ingest legacy data must go through
    translate_legacy_tier explicitly.

    Raises:
        InvalidSeverityTierError: value is not a canonical tier
    """
    if isinstance(value, SeverityTier):
        return value
    text = str(value).strip()
    try:
        return SeverityTier(text)
    except ValueError:
        pass
    if text.lower() in LEGACY_TIER_TRANSLATIONS:
        raise InvalidSeverityTierError(
            f"Legacy severity tier '{text}' is not accepted; use S0-S3",
            details={
                "value": text,
                "suggested": LEGACY_TIER_TRANSLATIONS[text.lower()].value,
            },
        )
    raise InvalidSeverityTierError(
        f"Unknown severity tier '{text}'",
        details={"value": text, "allowed": [t.value for t in SeverityTier]},
    )


def translate_legacy_tier(value: str) -> SeverityTier:
    """Explicit translation path for legacy free-text tiers."""
    text = str(value).strip()
    if text.upper() in {t.value for t in SeverityTier}:
        return SeverityTier(text.upper())
    tier = LEGACY_TIER_TRANSLATIONS.get(text.lower())
    if tier is None:
        raise InvalidSeverityTierError(
            f"No translation for severity tier '{text}'",
            details={"value": text},
        )
    return tier


def aggregate_severity_tiers(tiers: Iterable[Union[str, SeverityTier]]) -> dict[SeverityTier, int]:
    """
    Count issues per canonical tier for cross-document reports.

    Every tier appears in the output, including zero counts. A single
    non-canonical tier rejects the whole batch.
    """
    counts = {tier: 0 for tier in SeverityTier}
    for value in tiers:
        counts[parse_severity_tier(value)] += 1
    return counts


# =============================================================================
# Selection Policy
# =============================================================================

def get_confidence_band(score: int, policy: SelectionPolicy) -> ConfidenceBand:
    """Map a score to high/medium/low. Anything under medium is low."""
    if score >= policy.high_threshold:
        return ConfidenceBand.HIGH
    if score >= policy.medium_threshold:
        return ConfidenceBand.MEDIUM
    return ConfidenceBand.LOW


def make_selection_decision(
    candidates: Sequence[SelectionScore],
    explicit_template_id: Optional[str],
    policy: SelectionPolicy,
) -> tuple[SelectionDecision, float]:
    """
    Apply the selection safety policy.

    Args:
        candidates: Valid (non-disqualified) scores, sorted best first
        explicit_template_id: Caller-supplied template id, if any
        policy: Thresholds and ambiguity gap

    Returns:
        (decision, gap); gap is math.inf when there is no runner-up
    """
    gap = math.inf
    if len(candidates) >= 2:
        gap = candidates[0].score - candidates[1].score

    if explicit_template_id:
        if any(c.template_id == explicit_template_id for c in candidates):
            return AutoSelect(
                template_id=explicit_template_id,
                reason="Explicit templateId provided",
            ), gap
        return HardStop(
            reason=f"Explicit templateId '{explicit_template_id}' is not an active, matching template",
            fix_path="Verify templateId exists and is active",
        ), gap

    if not candidates:
        return HardStop(
            reason="No valid template candidates found",
            fix_path="Ensure at least one template is active and matches document fingerprint",
        ), gap

    top = candidates[0]
    band = get_confidence_band(top.score, policy)

    if band == ConfidenceBand.HIGH:
        return AutoSelect(
            template_id=top.template_id,
            reason=f"High confidence match (score {top.score})",
        ), gap

    if band == ConfidenceBand.MEDIUM:
        if gap >= policy.ambiguity_gap:
            gap_text = "no runner-up" if math.isinf(gap) else f"gap {gap}"
            return AutoSelect(
                template_id=top.template_id,
                reason=f"Medium confidence with clear lead (score {top.score}, {gap_text})",
            ), gap
        return ReviewQueue(
            reason=(
                f"Ambiguous selection between {top.template_id} and "
                f"{candidates[1].template_id} (gap {gap} < {policy.ambiguity_gap})"
            ),
            reason_code=ReasonCode.CONFLICT,
        ), gap

    return HardStop(
        reason=f"Low confidence match for {top.template_id} (score {top.score})",
        fix_path="Provide explicit templateId or improve document quality",
    ), gap
