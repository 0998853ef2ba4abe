"""
jobaudit Pack Schemas

Pydantic models for validating spec pack and fixture pack files.

Pack files are camelCase JSON/YAML; the schemas use snake_case attributes
with camelCase aliases. They map to the domain models in jobaudit.models.

Schema versioning:
- SCHEMA_VERSION tracks breaking changes to the pack layout
- Spec packs carry their own packVersion (semver) on top of that

Spec packs are validated in two layers so one bad template cannot take the
rest of its pack down with it: SpecPackHeaderSchema checks the pack envelope,
then each template is validated on its own with TemplateSchema.
"""
from __future__ import annotations

import re
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from ..semantics import CANONICAL_REASON_CODES


# =============================================================================
# Schema Version
# =============================================================================

SCHEMA_VERSION = "1.0.0"

TEMPLATE_ID_PATTERN = re.compile(r"^[A-Z][A-Z0-9_]+_V\d+$")
SEMVER_PATTERN = re.compile(r"^\d+\.\d+\.\d+$")


# =============================================================================
# Enums as Literals (for pack validation)
# =============================================================================

ResultTypeValue = Literal[
    "green", "orange", "red", "yellow", "yesNo", "yesNoNa", "string", "number"
]

ExpectedOutcomeValue = Literal["PASS", "FAIL"]


class PackModel(BaseModel):
    """Base for all pack schemas: camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _check_regex(value: str) -> str:
    try:
        re.compile(value)
    except re.error as e:
        raise ValueError(f"invalid regular expression '{value}': {e}") from e
    return value


def _check_semver(value: str) -> str:
    if not SEMVER_PATTERN.match(value):
        raise ValueError(f"'{value}' is not a semantic version (X.Y.Z)")
    return value


# =============================================================================
# Validator Schemas
# =============================================================================

class RegexValidatorSchema(PackModel):
    type: Literal["regex"]
    pattern: str

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        return _check_regex(v)


class RequiredValidatorSchema(PackModel):
    type: Literal["required"]


class MinLengthValidatorSchema(PackModel):
    type: Literal["minLength"]
    min: int = Field(..., ge=0)


ValidatorSchema = Annotated[
    Union[RegexValidatorSchema, RequiredValidatorSchema, MinLengthValidatorSchema],
    Field(discriminator="type"),
]


# =============================================================================
# Field Rule Schemas
# =============================================================================

class IfYesSchema(PackModel):
    requires_follow_up: bool = False
    requires_comments: bool = False
    description: Optional[str] = None


class DocumentationRuleSchema(PackModel):
    if_yes: Optional[IfYesSchema] = None


class ExtractionHintsSchema(PackModel):
    labels: list[str] = Field(default_factory=list)
    section: Optional[str] = None


class FieldRuleSchema(PackModel):
    """Rule for a plain field. required has no default on purpose."""
    required: bool
    validators: list[ValidatorSchema] = Field(default_factory=list)
    documentation_rule: Optional[DocumentationRuleSchema] = None
    extraction_hints: Optional[ExtractionHintsSchema] = None
    notes: Optional[str] = None


class ChecklistTaskSchema(PackModel):
    task_id: str = Field(..., min_length=1)
    task: str
    result_type: ResultTypeValue
    required: bool = False
    killer_question: bool = False
    summary_question: bool = False
    expected_value: Any = None
    documentation_rule: Optional[DocumentationRuleSchema] = None
    notes: Optional[str] = None


class ChecklistGroupSchema(PackModel):
    type: Literal["checklistGroup"]
    items: list[ChecklistTaskSchema] = Field(default_factory=list)
    notes: Optional[str] = None


def _field_rule_kind(value: Any) -> str:
    """Checklist groups are tagged; anything else is a plain field rule."""
    if isinstance(value, dict):
        kind = value.get("type")
    else:
        kind = getattr(value, "type", None)
    return "checklistGroup" if kind == "checklistGroup" else "field"


FieldRuleKindSchema = Annotated[
    Union[
        Annotated[FieldRuleSchema, Tag("field")],
        Annotated[ChecklistGroupSchema, Tag("checklistGroup")],
    ],
    Discriminator(_field_rule_kind),
]


class ValidationRuleSchema(PackModel):
    rule_id: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)


# =============================================================================
# Extension Schemas
# =============================================================================

class RoiRegionSchema(PackModel):
    name: str
    x: float
    y: float
    width: float
    height: float


class RoiDefinitionSchema(PackModel):
    page_index_0_based: int = Field(..., ge=0, alias="pageIndex0Based")
    regions: list[RoiRegionSchema] = Field(default_factory=list)


class SelectionCriteriaSchema(PackModel):
    required_tokens_all: list[str] = Field(default_factory=list)
    required_tokens_any: list[str] = Field(default_factory=list)
    optional_tokens: list[str] = Field(default_factory=list)
    exclude_tokens: list[str] = Field(default_factory=list)
    form_code_regex: Optional[str] = None

    @field_validator("form_code_regex")
    @classmethod
    def validate_form_code_regex(cls, v: Optional[str]) -> Optional[str]:
        return _check_regex(v) if v else v


# =============================================================================
# Template Schema
# =============================================================================

class TemplateSchema(PackModel):
    """Schema for one template inside a spec pack."""
    template_id: str
    display_name: str
    version: str
    client: str
    document_type: str
    description: str = ""
    field_rules: dict[str, FieldRuleKindSchema]
    validation_rules: list[ValidationRuleSchema]
    selection: Optional[SelectionCriteriaSchema] = None
    asset_types: list[str] = Field(default_factory=list)
    work_types: list[str] = Field(default_factory=list)
    roi_optional: Optional[RoiDefinitionSchema] = None
    sample_files: list[str] = Field(default_factory=list)

    @field_validator("template_id")
    @classmethod
    def validate_template_id(cls, v: str) -> str:
        if not TEMPLATE_ID_PATTERN.match(v):
            raise ValueError(f"templateId '{v}' must match PREFIX_NAME_V<n>")
        return v

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        return _check_semver(v)

    @model_validator(mode="after")
    def validate_unique_names(self) -> "TemplateSchema":
        """Task ids share one namespace with field names."""
        seen = {
            name for name, rule in self.field_rules.items()
            if isinstance(rule, FieldRuleSchema)
        }
        for rule in self.field_rules.values():
            if isinstance(rule, ChecklistGroupSchema):
                for task in rule.items:
                    if task.task_id in seen:
                        raise ValueError(f"Duplicate field or task id: '{task.task_id}'")
                    seen.add(task.task_id)
        rule_ids = [r.rule_id for r in self.validation_rules]
        duplicates = sorted({r for r in rule_ids if rule_ids.count(r) > 1})
        if duplicates:
            raise ValueError(f"Duplicate validation ruleId(s): {', '.join(duplicates)}")
        return self


# =============================================================================
# Spec Pack Schemas
# =============================================================================

class StatusLegendSchema(PackModel):
    label: str
    meaning: str = ""
    impact: str = ""


class SpecPackDefaultsSchema(PackModel):
    date_format: str = "DD/MM/YYYY"
    timezone: str = "Europe/London"
    review_queue_triggers: list[str] = Field(default_factory=list)
    review_queue_trigger_mappings: dict[str, str] = Field(default_factory=dict)
    critical_fields: list[str] = Field(default_factory=list)
    checklist_status_legend: dict[str, StatusLegendSchema] = Field(default_factory=dict)

    @field_validator("review_queue_trigger_mappings")
    @classmethod
    def validate_trigger_codes(cls, v: dict[str, str]) -> dict[str, str]:
        bad = sorted(code for code in v.values() if code not in CANONICAL_REASON_CODES)
        if bad:
            raise ValueError(f"non-canonical reason code(s) in trigger mappings: {', '.join(bad)}")
        return v


class AuditPerspectiveSchema(PackModel):
    description: str
    pass_conditions: list[str] = Field(default_factory=list)
    fail_conditions: list[str] = Field(default_factory=list)


class SpecPackHeaderSchema(PackModel):
    """
    Pack envelope.

    templates stays loosely typed here; templates are validated one by one
    so errors can be attributed per template.
    """
    pack_version: str
    pack_id: str = Field(..., min_length=1)
    display_name: str
    client: str
    created_at: Optional[str] = None
    defaults: SpecPackDefaultsSchema
    audit_perspective: Optional[AuditPerspectiveSchema] = None
    templates: list[Any]

    @field_validator("pack_version")
    @classmethod
    def validate_pack_version(cls, v: str) -> str:
        return _check_semver(v)

    @model_validator(mode="after")
    def validate_template_ids(self) -> "SpecPackHeaderSchema":
        """Every template needs a string id, unique within the pack."""
        seen: set[str] = set()
        problems: list[str] = []
        for i, raw in enumerate(self.templates):
            template_id = raw.get("templateId") if isinstance(raw, dict) else None
            if not isinstance(template_id, str) or not template_id:
                problems.append(f"templates[{i}] has no templateId")
                continue
            if template_id in seen:
                problems.append(f"templates[{i}] duplicates templateId '{template_id}'")
            seen.add(template_id)
        if problems:
            raise ValueError("; ".join(problems))
        return self


# =============================================================================
# Fixture Pack Schemas
# =============================================================================

class FixtureCaseSchema(PackModel):
    fixture_id: str = Field(
        ..., min_length=1,
        validation_alias=AliasChoices("fixtureId", "caseId", "fixture_id"),
    )
    template_id: Optional[str] = None
    template_version: Optional[str] = None
    description: str = ""
    expected_outcome: ExpectedOutcomeValue
    expected_reason_codes: list[str] = Field(default_factory=list)
    required_evidence_keys: list[str] = Field(default_factory=list)
    required: bool = True
    input_data: dict[str, Any] = Field(default_factory=dict)
    input_file: Optional[str] = None

    @field_validator("expected_reason_codes")
    @classmethod
    def validate_reason_codes(cls, v: list[str]) -> list[str]:
        bad = [code for code in v if code not in CANONICAL_REASON_CODES]
        if bad:
            raise ValueError(f"non-canonical reason code(s): {', '.join(bad)}")
        return v


class FixturePackSchema(PackModel):
    pack_id: str = Field(..., min_length=1)
    template_id: str
    template_version: str
    created_at: Optional[str] = None
    fixtures: list[FixtureCaseSchema]

    @field_validator("template_version")
    @classmethod
    def validate_template_version(cls, v: str) -> str:
        return _check_semver(v)

    @model_validator(mode="after")
    def validate_cases(self) -> "FixturePackSchema":
        """Case ids are unique and every case targets the pack's template version."""
        ids = [f.fixture_id for f in self.fixtures]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate fixtureId(s): {', '.join(duplicates)}")
        for case in self.fixtures:
            if case.template_id and case.template_id != self.template_id:
                raise ValueError(
                    f"Fixture {case.fixture_id} targets {case.template_id}, "
                    f"pack targets {self.template_id}"
                )
            if case.template_version and case.template_version != self.template_version:
                raise ValueError(
                    f"Fixture {case.fixture_id} targets version {case.template_version}, "
                    f"pack targets {self.template_version}"
                )
        return self


# =============================================================================
# Error Formatting
# =============================================================================

def format_validation_errors(error: ValidationError, prefix: str = "") -> list[str]:
    """Flatten a pydantic ValidationError into 'path: message' lines."""
    lines = []
    for item in error.errors():
        loc = ".".join(str(part) for part in item.get("loc", ()))
        message = item.get("msg", "invalid")
        if loc:
            lines.append(f"{prefix}{loc}: {message}")
        else:
            lines.append(f"{prefix.rstrip(': .')}: {message}" if prefix else message)
    return lines
