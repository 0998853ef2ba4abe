"""
jobaudit Template Selector

Picks the template that matches an unlabeled job sheet from its extracted
text, with a safety policy that refuses to guess.

Key features:
- Token fingerprint scoring (required-all, required-any, optional, exclude)
- Form code regex and client / asset type / work type context boosts
- Disqualification short-circuits: a template missing a required token or
  matching an exclude token can never win
- Deterministic candidate order: (-score, templateId)
- Explicit decisions: AutoSelect, ReviewQueue (ambiguous) or HardStop
- Selection trace for every call, persisted as a byte-stable artifact

Usage:
    selector = TemplateSelector(registry)
    result = selector.select_template(DocumentContext(extracted_text=text))
    if isinstance(result.decision, AutoSelect):
        template = result.selected_template
"""
from __future__ import annotations

import logging
import re
import time
from pathlib import Path
from typing import Any, Optional, Union
from uuid import uuid4

from ..canon import canonical_json, short_hash, text_hash
from ..models import (
    AutoSelect,
    ConfidenceBand,
    ContextMatches,
    DocumentContext,
    HardStop,
    ReviewQueue,
    RoiDefinition,
    RoiRegion,
    SelectionDecision,
    SelectionMethod,
    SelectionPolicy,
    SelectionResult,
    SelectionScore,
    SelectionTrace,
    Template,
    TokenMatches,
)
from ..semantics import get_confidence_band, make_selection_decision
from .roi import find_region
from .template_registry import TemplateRegistry

logger = logging.getLogger(__name__)


ARTIFACT_VERSION = "1.0.0"

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


# =============================================================================
# Text Matching
# =============================================================================

def normalize_text(text: str) -> str:
    """Lowercase, punctuation to spaces, whitespace collapsed."""
    text = _NON_WORD.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


def contains_token(normalized_text: str, token: str) -> bool:
    """Substring match of the normalized token in already-normalized text."""
    normalized_token = normalize_text(token)
    return bool(normalized_token) and normalized_token in normalized_text


def extract_form_code(text: str, pattern: str) -> Optional[str]:
    match = re.search(pattern, text, re.IGNORECASE)
    return match.group(0) if match else None


# =============================================================================
# Scoring
# =============================================================================

def score_template(template: Template, context: DocumentContext,
                   policy: SelectionPolicy) -> SelectionScore:
    """
    Score one template against a document.

    Disqualified templates score policy.disqualified_score and stop
    accumulating immediately.
    """
    selection = template.selection
    if selection is None:
        return SelectionScore(
            template_id=template.template_id,
            template_version=template.version,
            score=0,
            confidence=ConfidenceBand.LOW,
            reasons=["No selection criteria defined"],
        )

    text = normalize_text(context.extracted_text)
    matches = TokenMatches()
    unmatched: list[str] = []
    reasons: list[str] = []
    score = 0

    def disqualify(reason: str) -> SelectionScore:
        return SelectionScore(
            template_id=template.template_id,
            template_version=template.version,
            score=policy.disqualified_score,
            confidence=ConfidenceBand.LOW,
            tokens_matched=matches,
            unmatched_tokens=unmatched,
            reasons=[reason],
            disqualified=True,
        )

    for token in selection.required_tokens_all:
        if contains_token(text, token):
            matches.required_all.append(token)
            score += policy.required_all_weight
        else:
            unmatched.append(token)
    if unmatched:
        return disqualify(
            f"Not all required tokens matched "
            f"({len(matches.required_all)}/{len(selection.required_tokens_all)})"
        )

    if selection.required_tokens_any:
        for token in selection.required_tokens_any:
            if contains_token(text, token):
                matches.required_any.append(token)
                score += policy.required_any_weight
            else:
                unmatched.append(token)
        if not matches.required_any:
            return disqualify("None of the required-any tokens matched")

    for token in selection.exclude_tokens:
        if contains_token(text, token):
            matches.excluded.append(token)
    if matches.excluded:
        return disqualify(f"Exclude tokens matched: {', '.join(matches.excluded)}")

    for token in selection.optional_tokens:
        if contains_token(text, token):
            matches.optional.append(token)
            score += policy.optional_weight
        else:
            unmatched.append(token)

    form_code_match = False
    if selection.form_code_regex:
        form_code = extract_form_code(context.form_code or context.extracted_text,
                                      selection.form_code_regex)
        if form_code is not None:
            form_code_match = True
            score += policy.form_code_weight
            reasons.append(f"Form code matched: {form_code}")

    context_matches = ContextMatches()
    if context.client and template.client == context.client:
        context_matches.client = True
        score += policy.client_weight
        reasons.append(f"Client matched: {context.client}")
    if context.asset_type and context.asset_type in template.asset_types:
        context_matches.asset_type = True
        score += policy.asset_type_weight
        reasons.append(f"Asset type matched: {context.asset_type}")
    if context.work_type and context.work_type in template.work_types:
        context_matches.work_type = True
        score += policy.work_type_weight
        reasons.append(f"Work type matched: {context.work_type}")

    return SelectionScore(
        template_id=template.template_id,
        template_version=template.version,
        score=score,
        confidence=get_confidence_band(score, policy),
        tokens_matched=matches,
        unmatched_tokens=unmatched,
        reasons=reasons,
        form_code_match=form_code_match,
        context_matches=context_matches,
    )


# =============================================================================
# Selector
# =============================================================================

class TemplateSelector:
    """Selects templates from the active set of an injected registry."""

    def __init__(self, registry: TemplateRegistry, policy: Optional[SelectionPolicy] = None) -> None:
        self.registry = registry
        self.policy = policy or SelectionPolicy(ambiguity_gap=registry.settings.ambiguity_gap)

    def select_template(self, context: DocumentContext) -> SelectionResult:
        """
        Score every active template and apply the safety policy.

        HARD_STOP and REVIEW_QUEUE are ordinary results; REVIEW_QUEUE still
        carries the top candidate for the human reviewer.
        """
        start = time.perf_counter()
        warnings: list[str] = []

        templates = self.registry.get_active_templates()
        if context.client:
            client_templates = [t for t in templates if t.client == context.client]
            if client_templates:
                templates = client_templates
            else:
                warnings.append(f"No templates found for client: {context.client}")
        if not templates:
            warnings.append("No active templates available")

        all_scores = sorted(
            (score_template(t, context, self.policy) for t in templates),
            key=lambda s: (-s.score, s.template_id),
        )
        candidates = [s for s in all_scores if not s.disqualified]

        decision, gap = make_selection_decision(candidates, context.explicit_template_id, self.policy)
        trace = self._build_trace(context.extracted_text, candidates, decision, gap,
                                  context.explicit_template_id, start)

        selected_template: Optional[Template] = None
        selected_score: Optional[SelectionScore] = None
        method = SelectionMethod.NONE
        confidence = trace.confidence_band

        if isinstance(decision, HardStop):
            warnings.extend([decision.reason, f"Fix path: {decision.fix_path}"])
        elif isinstance(decision, ReviewQueue):
            selected_score = candidates[0]
            selected_template = self.registry.get_template(selected_score.template_id)
            method = SelectionMethod.FINGERPRINT
            warnings.extend([decision.reason, f"Reason: {decision.reason_code.value}"])
        elif isinstance(decision, AutoSelect):
            selected_score = next(s for s in candidates if s.template_id == decision.template_id)
            selected_template = self.registry.get_template(decision.template_id)
            confidence = selected_score.confidence
            if context.explicit_template_id:
                method = SelectionMethod.MANUAL
            else:
                method = SelectionMethod.FINGERPRINT
                if len(candidates) > 1 and gap < self.policy.ambiguity_gap:
                    warnings.append(
                        f"Ambiguous selection: {candidates[0].template_id} and "
                        f"{candidates[1].template_id} have similar scores (gap={gap})"
                    )
        else:
            raise TypeError(f"Unhandled selection decision: {type(decision).__name__}")

        self._log(trace)
        return SelectionResult(
            selected_template=selected_template,
            selected_score=selected_score,
            all_scores=all_scores,
            selection_method=method,
            confidence=confidence,
            decision=decision,
            trace=trace,
            warnings=warnings,
        )

    def select_template_by_id(self, template_id: str) -> SelectionResult:
        """Manual selection: no scoring, maximal confidence. Unknown or inactive ids stop."""
        start = time.perf_counter()
        template = self.registry.get_template(template_id)

        if template is None:
            decision = HardStop(
                reason=f"Template not found or not active: {template_id}",
                fix_path="Verify templateId exists and is active",
            )
            trace = self._build_trace("", [], decision, -1, template_id, start)
            self._log(trace)
            return SelectionResult(
                selected_template=None,
                selected_score=None,
                all_scores=[],
                selection_method=SelectionMethod.MANUAL,
                confidence=ConfidenceBand.LOW,
                decision=decision,
                trace=trace,
                warnings=[f"Template not found: {template_id}"],
            )

        score = SelectionScore(
            template_id=template_id,
            template_version=template.version,
            score=100,
            confidence=ConfidenceBand.HIGH,
            reasons=["Manual selection"],
        )
        decision = AutoSelect(template_id=template_id, reason="Explicit templateId provided")
        trace = self._build_trace("", [score], decision, -1, template_id, start)
        self._log(trace)
        return SelectionResult(
            selected_template=template,
            selected_score=score,
            all_scores=[score],
            selection_method=SelectionMethod.MANUAL,
            confidence=ConfidenceBand.HIGH,
            decision=decision,
            trace=trace,
        )

    # -------------------------------------------------------------------------
    # ROI helpers
    # -------------------------------------------------------------------------

    def get_roi(self, template_id: str) -> Optional[RoiDefinition]:
        template = self.registry.get_template(template_id)
        return template.roi_optional if template is not None else None

    def get_roi_regions_for_page(self, template_id: str, page_index: int) -> list[RoiRegion]:
        roi = self.get_roi(template_id)
        if roi is None or roi.page_index_0_based != page_index:
            return []
        return list(roi.regions)

    def is_point_in_roi(self, template_id: str, page_index: int,
                        x: float, y: float) -> Optional[RoiRegion]:
        """Region containing the point, or None."""
        return find_region(self.get_roi(template_id), page_index, x, y)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _build_trace(self, text: str, candidates: list[SelectionScore], decision: SelectionDecision,
                     gap: Union[int, float], explicit_template_id: Optional[str],
                     start: float) -> SelectionTrace:
        top = candidates[0] if candidates else None
        runner_up = candidates[1] if len(candidates) > 1 else None
        if explicit_template_id and isinstance(decision, AutoSelect):
            band = ConfidenceBand.HIGH
        else:
            band = top.confidence if top is not None else ConfidenceBand.LOW
        return SelectionTrace(
            trace_id=str(uuid4()),
            input_hash=text_hash(text),
            candidates=list(candidates),
            decision=decision,
            confidence_band=band,
            explicit_template_id=explicit_template_id,
            top_candidate=top.template_id if top is not None else None,
            runner_up=runner_up.template_id if runner_up is not None else None,
            gap=int(gap) if runner_up is not None else -1,
            duration_ms=round((time.perf_counter() - start) * 1000, 3),
        )

    def _log(self, trace: SelectionTrace) -> None:
        logger.info(
            "Selection %s: %s (top=%s, gap=%s)",
            trace.trace_id, trace.decision.type.value, trace.top_candidate, trace.gap,
            extra={
                "input_hash_short": short_hash(trace.input_hash),
                "decision": trace.decision.type.value,
                "confidence": trace.confidence_band.value,
                "template_id": trace.top_candidate,
                "duration_ms": trace.duration_ms,
            },
        )


# =============================================================================
# Selection Artifact
# =============================================================================

def create_selection_artifact(trace: SelectionTrace) -> dict[str, Any]:
    """
    Versioned, persistable form of a trace.

    Volatile fields (trace id, timestamp, duration) are excluded so identical
    input always yields the same artifact.
    """
    return {
        "artifactVersion": ARTIFACT_VERSION,
        "inputHash": trace.input_hash,
        "explicitTemplateId": trace.explicit_template_id,
        "candidates": [c.to_artifact() for c in trace.candidates],
        "decision": trace.decision.to_dict(),
    }


def serialize_selection_artifact(artifact: dict[str, Any]) -> str:
    return canonical_json(artifact)


def write_selection_artifact(trace: SelectionTrace, directory: Union[str, Path]) -> Path:
    """Persist the artifact as selection-<input hash prefix>.json; returns the path."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"selection-{short_hash(trace.input_hash, 16)}.json"
    path.write_text(serialize_selection_artifact(create_selection_artifact(trace)), encoding="utf-8")
    logger.debug("Wrote selection artifact %s", path)
    return path
