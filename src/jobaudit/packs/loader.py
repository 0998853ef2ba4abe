"""
jobaudit Spec Pack Loader

Reads spec packs from YAML or JSON files and converts validated Pydantic
schema models to jobaudit domain models.

The registry owns registration; this module only parses and converts.
Structural problems come back as error lists, never as a half-built model.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml
from pydantic import ValidationError

from ..exceptions import PackLoadError
from ..models import (
    AuditPerspective,
    ChecklistGroup,
    ChecklistResultType,
    ChecklistTask,
    DocumentationRule,
    ExtractionHints,
    FieldRule,
    FieldRuleKind,
    MinLengthValidator,
    RegexValidator,
    RequiredValidator,
    RoiDefinition,
    RoiRegion,
    SelectionCriteria,
    SpecPackDefaults,
    StatusLegendEntry,
    Template,
    ValidationRule,
    Validator,
)
from .schema import (
    AuditPerspectiveSchema,
    ChecklistGroupSchema,
    ChecklistTaskSchema,
    DocumentationRuleSchema,
    FieldRuleSchema,
    MinLengthValidatorSchema,
    RegexValidatorSchema,
    RequiredValidatorSchema,
    RoiDefinitionSchema,
    SelectionCriteriaSchema,
    SpecPackDefaultsSchema,
    SpecPackHeaderSchema,
    TemplateSchema,
    format_validation_errors,
)


# =============================================================================
# File Reading
# =============================================================================

def read_pack_file(path: Union[str, Path]) -> dict[str, Any]:
    """
    Read a pack file as a mapping.

    Format is chosen by suffix (.json, .yaml/.yml); anything else is tried
    as YAML, which also accepts JSON.

    Raises:
        PackLoadError: file missing, unreadable, unparseable or not a mapping
    """
    path = Path(path)
    if not path.exists():
        raise PackLoadError(f"Pack file not found: {path}", details={"path": str(path)})

    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise PackLoadError(
            f"Failed to parse pack file: {path}",
            details={"path": str(path), "error": str(e)},
        ) from e

    if not isinstance(data, dict):
        raise PackLoadError(
            f"Pack file must contain a mapping: {path}",
            details={"path": str(path), "type": type(data).__name__},
        )
    return data


# =============================================================================
# Schema to Model Converters
# =============================================================================

def _convert_validator(
    schema: Union[RegexValidatorSchema, RequiredValidatorSchema, MinLengthValidatorSchema],
) -> Validator:
    if isinstance(schema, RegexValidatorSchema):
        return RegexValidator(pattern=schema.pattern)
    if isinstance(schema, RequiredValidatorSchema):
        return RequiredValidator()
    if isinstance(schema, MinLengthValidatorSchema):
        return MinLengthValidator(min=schema.min)
    raise TypeError(f"Unhandled validator schema: {type(schema).__name__}")


def _convert_documentation_rule(
    schema: Optional[DocumentationRuleSchema],
) -> Optional[DocumentationRule]:
    if schema is None or schema.if_yes is None:
        return None
    return DocumentationRule(
        requires_follow_up=schema.if_yes.requires_follow_up,
        requires_comments=schema.if_yes.requires_comments,
        description=schema.if_yes.description,
    )


def _convert_field_rule(schema: FieldRuleSchema) -> FieldRule:
    hints = None
    if schema.extraction_hints is not None:
        hints = ExtractionHints(
            labels=tuple(schema.extraction_hints.labels),
            section=schema.extraction_hints.section,
        )
    return FieldRule(
        required=schema.required,
        validators=tuple(_convert_validator(v) for v in schema.validators),
        documentation_rule=_convert_documentation_rule(schema.documentation_rule),
        extraction_hints=hints,
        notes=schema.notes,
    )


def _convert_checklist_task(schema: ChecklistTaskSchema) -> ChecklistTask:
    return ChecklistTask(
        task_id=schema.task_id,
        task=schema.task,
        result_type=ChecklistResultType(schema.result_type),
        required=schema.required,
        killer_question=schema.killer_question,
        summary_question=schema.summary_question,
        expected_value=schema.expected_value,
        documentation_rule=_convert_documentation_rule(schema.documentation_rule),
        notes=schema.notes,
    )


def _convert_field_rule_kind(schema: Union[FieldRuleSchema, ChecklistGroupSchema]) -> FieldRuleKind:
    if isinstance(schema, ChecklistGroupSchema):
        return ChecklistGroup(
            items=tuple(_convert_checklist_task(t) for t in schema.items),
            notes=schema.notes,
        )
    if isinstance(schema, FieldRuleSchema):
        return _convert_field_rule(schema)
    raise TypeError(f"Unhandled field rule schema: {type(schema).__name__}")


def _convert_selection(schema: Optional[SelectionCriteriaSchema]) -> Optional[SelectionCriteria]:
    if schema is None:
        return None
    return SelectionCriteria(
        required_tokens_all=tuple(schema.required_tokens_all),
        required_tokens_any=tuple(schema.required_tokens_any),
        optional_tokens=tuple(schema.optional_tokens),
        exclude_tokens=tuple(schema.exclude_tokens),
        form_code_regex=schema.form_code_regex,
    )


def _convert_roi(schema: Optional[RoiDefinitionSchema]) -> Optional[RoiDefinition]:
    if schema is None:
        return None
    return RoiDefinition(
        page_index_0_based=schema.page_index_0_based,
        regions=tuple(
            RoiRegion(name=r.name, x=r.x, y=r.y, width=r.width, height=r.height)
            for r in schema.regions
        ),
    )


def convert_template(schema: TemplateSchema) -> Template:
    """Convert a validated TemplateSchema to a Template."""
    return Template(
        template_id=schema.template_id,
        display_name=schema.display_name,
        version=schema.version,
        client=schema.client,
        document_type=schema.document_type,
        description=schema.description,
        field_rules={
            name: _convert_field_rule_kind(rule)
            for name, rule in schema.field_rules.items()
        },
        validation_rules=tuple(
            ValidationRule(rule_id=r.rule_id, description=r.description)
            for r in schema.validation_rules
        ),
        selection=_convert_selection(schema.selection),
        asset_types=tuple(schema.asset_types),
        work_types=tuple(schema.work_types),
        roi_optional=_convert_roi(schema.roi_optional),
        sample_files=tuple(schema.sample_files),
    )


def convert_defaults(schema: SpecPackDefaultsSchema) -> SpecPackDefaults:
    """Convert pack defaults."""
    return SpecPackDefaults(
        date_format=schema.date_format,
        timezone=schema.timezone,
        review_queue_triggers=tuple(schema.review_queue_triggers),
        critical_fields=tuple(schema.critical_fields),
        review_queue_trigger_mappings=dict(schema.review_queue_trigger_mappings),
        checklist_status_legend={
            key: StatusLegendEntry(label=v.label, meaning=v.meaning, impact=v.impact)
            for key, v in schema.checklist_status_legend.items()
        },
    )


def convert_audit_perspective(schema: Optional[AuditPerspectiveSchema]) -> Optional[AuditPerspective]:
    if schema is None:
        return None
    return AuditPerspective(
        description=schema.description,
        pass_conditions=tuple(schema.pass_conditions),
        fail_conditions=tuple(schema.fail_conditions),
    )


# =============================================================================
# Parsing
# =============================================================================

def parse_pack_header(data: Any) -> tuple[Optional[SpecPackHeaderSchema], list[str]]:
    """Validate the pack envelope. Returns (header, errors)."""
    if not isinstance(data, Mapping):
        return None, [f"Spec pack must be a mapping, got {type(data).__name__}"]
    try:
        return SpecPackHeaderSchema.model_validate(dict(data)), []
    except ValidationError as e:
        return None, format_validation_errors(e)


def parse_template(data: Any, prefix: str = "") -> tuple[Optional[Template], list[str]]:
    """
    Validate and convert one template mapping.

    Returns:
        (template, errors); template is None whenever errors is non-empty
    """
    if not isinstance(data, Mapping):
        return None, [f"{prefix}template must be a mapping"]
    try:
        schema = TemplateSchema.model_validate(dict(data))
    except ValidationError as e:
        return None, format_validation_errors(e, prefix=prefix)
    return convert_template(schema), []
