"""
Tests for jobaudit canonical semantics.

Covers:
- Reason code membership
- Severity tier parsing, legacy translation and aggregation
- Confidence bands and the selection safety policy
"""
import math

import pytest

from jobaudit.exceptions import InvalidSeverityTierError
from jobaudit.models import (
    AutoSelect,
    ConfidenceBand,
    HardStop,
    ReasonCode,
    ReviewQueue,
    SelectionPolicy,
    SelectionScore,
    Severity,
    SeverityTier,
)
from jobaudit.semantics import (
    aggregate_severity_tiers,
    get_confidence_band,
    is_canonical_reason_code,
    make_selection_decision,
    non_canonical_codes,
    parse_severity_tier,
    severity_to_tier,
    translate_legacy_tier,
)


def make_score(template_id: str, score: int, policy: SelectionPolicy = None) -> SelectionScore:
    policy = policy or SelectionPolicy()
    return SelectionScore(
        template_id=template_id,
        template_version="1.0.0",
        score=score,
        confidence=get_confidence_band(score, policy),
    )


# =============================================================================
# Reason Codes
# =============================================================================

class TestReasonCodes:
    """Tests for the closed reason-code vocabulary."""

    def test_every_enum_member_is_canonical(self):
        for code in ReasonCode:
            assert is_canonical_reason_code(code)
            assert is_canonical_reason_code(code.value)

    def test_unknown_string_is_not_canonical(self):
        assert not is_canonical_reason_code("FIELD_MISSING")
        assert not is_canonical_reason_code("missing_field")
        assert not is_canonical_reason_code(None)

    def test_non_canonical_codes_keeps_input_order_without_duplicates(self):
        codes = ["MISSING_FIELD", "ZZZ", "FIELD_MISSING", "ZZZ", ReasonCode.CONFLICT]
        assert non_canonical_codes(codes) == ["ZZZ", "FIELD_MISSING"]


# =============================================================================
# Severity Tiers
# =============================================================================

class TestSeverityTiers:
    """Tests for S0-S3 parsing and aggregation."""

    def test_severity_maps_to_tier(self):
        assert severity_to_tier(Severity.CRITICAL) == SeverityTier.S0
        assert severity_to_tier(Severity.MAJOR) == SeverityTier.S1
        assert severity_to_tier(Severity.MINOR) == SeverityTier.S2
        assert severity_to_tier(Severity.INFO) == SeverityTier.S3

    def test_parse_canonical_tier(self):
        assert parse_severity_tier("S1") == SeverityTier.S1
        assert parse_severity_tier(SeverityTier.S3) == SeverityTier.S3

    def test_legacy_tier_rejected_with_suggestion(self):
        with pytest.raises(InvalidSeverityTierError) as exc_info:
            parse_severity_tier("high")
        assert exc_info.value.code == "JA_INVALID_SEVERITY_TIER"
        assert exc_info.value.details["suggested"] == "S1"

    def test_unknown_tier_rejected_with_allowed_list(self):
        with pytest.raises(InvalidSeverityTierError) as exc_info:
            parse_severity_tier("S9")
        assert exc_info.value.details["allowed"] == ["S0", "S1", "S2", "S3"]

    def test_explicit_legacy_translation(self):
        assert translate_legacy_tier("blocker") == SeverityTier.S0
        assert translate_legacy_tier("Medium") == SeverityTier.S2
        assert translate_legacy_tier("s3") == SeverityTier.S3

    def test_untranslatable_legacy_tier(self):
        with pytest.raises(InvalidSeverityTierError):
            translate_legacy_tier("catastrophic")

    def test_aggregate_includes_zero_counts(self):
        counts = aggregate_severity_tiers(["S0", "S2", "S2"])
        assert counts == {
            SeverityTier.S0: 1,
            SeverityTier.S1: 0,
            SeverityTier.S2: 2,
            SeverityTier.S3: 0,
        }

    def test_aggregate_rejects_batch_with_legacy_tier(self):
        with pytest.raises(InvalidSeverityTierError):
            aggregate_severity_tiers(["S0", "low"])


# =============================================================================
# Selection Policy
# =============================================================================

class TestConfidenceBands:

    @pytest.mark.parametrize("score,band", [
        (100, ConfidenceBand.HIGH),
        (80, ConfidenceBand.HIGH),
        (79, ConfidenceBand.MEDIUM),
        (50, ConfidenceBand.MEDIUM),
        (49, ConfidenceBand.LOW),
        (0, ConfidenceBand.LOW),
    ])
    def test_band_boundaries(self, score, band):
        assert get_confidence_band(score, SelectionPolicy()) == band


class TestSelectionDecision:
    """Tests for AUTO_SELECT / REVIEW_QUEUE / HARD_STOP."""

    def test_no_candidates_hard_stops(self):
        decision, gap = make_selection_decision([], None, SelectionPolicy())
        assert isinstance(decision, HardStop)
        assert decision.reason_code == ReasonCode.PIPELINE_ERROR
        assert "at least one template is active" in decision.fix_path
        assert math.isinf(gap)

    def test_high_confidence_auto_selects(self):
        decision, _ = make_selection_decision([make_score("A_V1", 85)], None, SelectionPolicy())
        assert isinstance(decision, AutoSelect)
        assert decision.template_id == "A_V1"

    def test_high_confidence_auto_selects_despite_small_gap(self):
        candidates = [make_score("A_V1", 85), make_score("B_V1", 84)]
        decision, gap = make_selection_decision(candidates, None, SelectionPolicy())
        assert isinstance(decision, AutoSelect)
        assert gap == 1

    def test_medium_with_clear_lead_auto_selects(self):
        candidates = [make_score("A_V1", 65), make_score("B_V1", 40)]
        decision, gap = make_selection_decision(candidates, None, SelectionPolicy())
        assert isinstance(decision, AutoSelect)
        assert gap == 25

    def test_medium_without_runner_up_auto_selects(self):
        decision, gap = make_selection_decision([make_score("A_V1", 60)], None, SelectionPolicy())
        assert isinstance(decision, AutoSelect)
        assert math.isinf(gap)

    def test_medium_with_small_gap_goes_to_review(self):
        candidates = [make_score("A_V1", 65), make_score("B_V1", 60)]
        decision, gap = make_selection_decision(candidates, None, SelectionPolicy())
        assert isinstance(decision, ReviewQueue)
        assert decision.reason_code == ReasonCode.CONFLICT
        assert gap == 5

    def test_gap_equal_to_threshold_is_clear(self):
        candidates = [make_score("A_V1", 70), make_score("B_V1", 60)]
        decision, _ = make_selection_decision(candidates, None, SelectionPolicy())
        assert isinstance(decision, AutoSelect)

    def test_low_confidence_hard_stops(self):
        decision, _ = make_selection_decision([make_score("A_V1", 30)], None, SelectionPolicy())
        assert isinstance(decision, HardStop)
        assert decision.fix_path == "Provide explicit templateId or improve document quality"

    def test_explicit_id_among_candidates_wins(self):
        candidates = [make_score("A_V1", 90), make_score("B_V1", 30)]
        decision, _ = make_selection_decision(candidates, "B_V1", SelectionPolicy())
        assert isinstance(decision, AutoSelect)
        assert decision.template_id == "B_V1"
        assert decision.reason == "Explicit templateId provided"

    def test_explicit_id_not_among_candidates_hard_stops(self):
        decision, _ = make_selection_decision([make_score("A_V1", 90)], "X_V1", SelectionPolicy())
        assert isinstance(decision, HardStop)
        assert decision.fix_path == "Verify templateId exists and is active"

    def test_custom_ambiguity_gap(self):
        policy = SelectionPolicy(ambiguity_gap=30)
        candidates = [make_score("A_V1", 65, policy), make_score("B_V1", 40, policy)]
        decision, _ = make_selection_decision(candidates, None, policy)
        assert isinstance(decision, ReviewQueue)
