"""
jobaudit Engine

The decision pipeline: registry, selector, rules engine and fixture runner.

    registry = TemplateRegistry(settings)
    registry.load_directory("packs")
    selector = TemplateSelector(registry)
    engine = ConditionalRulesEngine(registry)
    runner = FixtureMatrixRunner(make_rules_engine_validator(engine))
"""
from __future__ import annotations

from .roi import (
    STANDARD_ROI_TYPES,
    RoiValidation,
    find_region,
    point_in_region,
    regions_overlap,
    validate_roi,
)
from .fixture_runner import (
    REQUIRED_FIXTURE_TYPES,
    FixtureMatrixRunner,
    check_activation_gate,
    classify_fixture,
    fields_from_input,
    filter_packs_for_ci,
    make_rules_engine_validator,
    validate_fixture_pack,
)
from .activation import (
    CRITICAL_ROI_NAMES,
    DEFAULT_CRITICAL_FIELDS,
    ActivationIssue,
    ActivationPolicy,
    ActivationPreconditionResult,
    check_activation_policy,
    check_activation_preconditions,
    check_fixture_gate,
    create_activation_report,
    format_activation_error,
    missing_critical_rois,
    write_activation_report,
)
from .template_registry import (
    ActivationResult,
    LoadPackResult,
    TemplateRegistry,
    compute_template_hash,
)
from .template_selector import (
    TemplateSelector,
    create_selection_artifact,
    normalize_text,
    score_template,
    serialize_selection_artifact,
    write_selection_artifact,
)
from .rules_engine import (
    STATUS_LEGEND,
    ConditionalRulesEngine,
    create_failure_result,
    normalize_status,
    run_validator,
)

__all__ = [
    # ROI
    "STANDARD_ROI_TYPES",
    "RoiValidation",
    "find_region",
    "point_in_region",
    "regions_overlap",
    "validate_roi",
    # Fixture runner
    "REQUIRED_FIXTURE_TYPES",
    "FixtureMatrixRunner",
    "check_activation_gate",
    "classify_fixture",
    "fields_from_input",
    "filter_packs_for_ci",
    "make_rules_engine_validator",
    "validate_fixture_pack",
    # Activation
    "CRITICAL_ROI_NAMES",
    "DEFAULT_CRITICAL_FIELDS",
    "ActivationIssue",
    "ActivationPolicy",
    "ActivationPreconditionResult",
    "check_activation_policy",
    "check_activation_preconditions",
    "check_fixture_gate",
    "create_activation_report",
    "format_activation_error",
    "missing_critical_rois",
    "write_activation_report",
    # Registry
    "ActivationResult",
    "LoadPackResult",
    "TemplateRegistry",
    "compute_template_hash",
    # Selector
    "TemplateSelector",
    "create_selection_artifact",
    "normalize_text",
    "score_template",
    "serialize_selection_artifact",
    "write_selection_artifact",
    # Rules engine
    "STATUS_LEGEND",
    "ConditionalRulesEngine",
    "create_failure_result",
    "normalize_status",
    "run_validator",
]
