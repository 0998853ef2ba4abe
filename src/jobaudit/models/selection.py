"""
jobaudit Selection Models

Inputs and outputs of the template selector.

SelectionDecision is a closed union of three variants. HARD_STOP and
REVIEW_QUEUE are ordinary outcomes that callers branch on, not errors.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar, Optional, Union

from .enums import ConfidenceBand, DecisionType, ReasonCode, SelectionMethod
from .template import Template


# =============================================================================
# Inputs
# =============================================================================

@dataclass(frozen=True)
class DocumentContext:
    """What the selector knows about an unlabeled document."""
    extracted_text: str
    client: Optional[str] = None
    asset_type: Optional[str] = None
    work_type: Optional[str] = None
    # Form code read separately (e.g. from a header ROI); the text is used when absent
    form_code: Optional[str] = None
    explicit_template_id: Optional[str] = None


@dataclass(frozen=True)
class SelectionPolicy:
    """Scoring weights and decision thresholds."""
    # Weights
    required_all_weight: int = 30
    required_any_weight: int = 20
    optional_weight: int = 5
    exclude_penalty: int = -50
    form_code_weight: int = 25
    client_weight: int = 15
    asset_type_weight: int = 10
    work_type_weight: int = 10
    disqualified_score: int = -1000

    # Confidence bands
    high_threshold: int = 80
    medium_threshold: int = 50
    low_threshold: int = 20

    # Minimum lead over the runner-up for a medium-confidence auto-select
    ambiguity_gap: int = 10


# =============================================================================
# Scores
# =============================================================================

@dataclass
class TokenMatches:
    """Matched fingerprint tokens, by criterion."""
    required_all: list[str] = field(default_factory=list)
    required_any: list[str] = field(default_factory=list)
    optional: list[str] = field(default_factory=list)
    excluded: list[str] = field(default_factory=list)

    def all(self) -> list[str]:
        return self.required_all + self.required_any + self.optional

    def to_dict(self) -> dict[str, Any]:
        return {
            "requiredAll": list(self.required_all),
            "requiredAny": list(self.required_any),
            "optional": list(self.optional),
            "excluded": list(self.excluded),
        }


@dataclass
class ContextMatches:
    client: bool = False
    asset_type: bool = False
    work_type: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "client": self.client,
            "assetType": self.asset_type,
            "workType": self.work_type,
        }


@dataclass
class SelectionScore:
    """Per-template scoring result for one document."""
    template_id: str
    template_version: str
    score: int
    confidence: ConfidenceBand
    tokens_matched: TokenMatches = field(default_factory=TokenMatches)
    unmatched_tokens: list[str] = field(default_factory=list)
    reasons: list[str] = field(default_factory=list)
    disqualified: bool = False
    form_code_match: bool = False
    context_matches: ContextMatches = field(default_factory=ContextMatches)

    @property
    def matched_tokens(self) -> list[str]:
        return self.tokens_matched.all()

    def to_artifact(self) -> dict[str, Any]:
        """Candidate entry of the selection artifact."""
        return {
            "templateId": self.template_id,
            "score": self.score,
            "confidenceBand": self.confidence.value,
            "tokensMatched": self.tokens_matched.to_dict(),
            "formCodeMatch": self.form_code_match,
            "contextMatches": self.context_matches.to_dict(),
        }

    def to_dict(self) -> dict[str, Any]:
        data = self.to_artifact()
        data.update({
            "templateVersion": self.template_version,
            "tokensUnmatched": list(self.unmatched_tokens),
            "reasons": list(self.reasons),
            "disqualified": self.disqualified,
        })
        return data


# =============================================================================
# Decisions
# =============================================================================

@dataclass(frozen=True)
class AutoSelect:
    template_id: str
    reason: str
    type: ClassVar[DecisionType] = DecisionType.AUTO_SELECT

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "templateId": self.template_id, "reason": self.reason}


@dataclass(frozen=True)
class ReviewQueue:
    reason: str
    reason_code: ReasonCode = ReasonCode.CONFLICT
    type: ClassVar[DecisionType] = DecisionType.REVIEW_QUEUE

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "reason": self.reason, "reasonCode": self.reason_code.value}


@dataclass(frozen=True)
class HardStop:
    reason: str
    fix_path: str
    reason_code: ReasonCode = ReasonCode.PIPELINE_ERROR
    type: ClassVar[DecisionType] = DecisionType.HARD_STOP

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "reason": self.reason,
            "fixPath": self.fix_path,
            "reasonCode": self.reason_code.value,
        }


SelectionDecision = Union[AutoSelect, ReviewQueue, HardStop]


# =============================================================================
# Trace & Result
# =============================================================================

@dataclass
class SelectionTrace:
    """
    Audit record of one selection call.

    Built for every call, including stops. trace_id, timestamp and
    duration_ms are volatile and stay out of the persisted artifact.
    """
    trace_id: str
    input_hash: str
    candidates: list[SelectionScore]
    decision: SelectionDecision
    confidence_band: ConfidenceBand
    explicit_template_id: Optional[str] = None
    top_candidate: Optional[str] = None
    runner_up: Optional[str] = None
    gap: int = -1  # -1 when there is no runner-up
    duration_ms: float = 0.0
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "traceId": self.trace_id,
            "timestamp": self.timestamp,
            "inputHash": self.input_hash,
            "explicitTemplateId": self.explicit_template_id,
            "candidates": [c.to_dict() for c in self.candidates],
            "topCandidate": self.top_candidate,
            "runnerUp": self.runner_up,
            "gap": self.gap,
            "confidenceBand": self.confidence_band.value,
            "decision": self.decision.to_dict(),
            "durationMs": self.duration_ms,
        }


@dataclass
class SelectionResult:
    """What select_template hands back to the pipeline."""
    selected_template: Optional[Template]
    selected_score: Optional[SelectionScore]
    all_scores: list[SelectionScore]
    selection_method: SelectionMethod
    confidence: ConfidenceBand
    decision: SelectionDecision
    trace: SelectionTrace
    warnings: list[str] = field(default_factory=list)

    @property
    def auto_selected(self) -> bool:
        return isinstance(self.decision, AutoSelect)
