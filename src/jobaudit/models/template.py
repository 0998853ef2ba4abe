"""
jobaudit Template Models

Domain models for versioned job-sheet templates and the spec packs that
carry them.

Field rules and validators are closed tagged unions:
- FieldRuleKind = FieldRule | ChecklistGroup
- Validator = RegexValidator | RequiredValidator | MinLengthValidator

Consumers dispatch on the concrete class. Adding a new kind means adding a
class here, a schema variant in packs.schema, and a branch wherever the
union is matched (the matchers raise on anything they do not know).

Optional template extensions (selection criteria, asset/work types, ROI
hints) are explicit Optional fields rather than loosely-typed extras.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar, Iterator, Optional, Union

from .enums import ChecklistResultType, TemplateStatus


# =============================================================================
# Validators
# =============================================================================

@dataclass(frozen=True)
class RegexValidator:
    """Value (as text) must contain a match for pattern."""
    pattern: str
    kind: ClassVar[str] = "regex"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.kind, "pattern": self.pattern}


@dataclass(frozen=True)
class RequiredValidator:
    """Value must be non-empty after trimming."""
    kind: ClassVar[str] = "required"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.kind}


@dataclass(frozen=True)
class MinLengthValidator:
    """Value (as text) must be at least min characters long."""
    min: int
    kind: ClassVar[str] = "minLength"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.kind, "min": self.min}


Validator = Union[RegexValidator, RequiredValidator, MinLengthValidator]


# =============================================================================
# Field Rules
# =============================================================================

@dataclass(frozen=True)
class DocumentationRule:
    """
    Dependent-evidence requirement triggered when the field answers "yes".

    requires_follow_up: the follow-up field must also answer "yes"
    requires_comments: the comments field must carry enough text
    """
    requires_follow_up: bool = False
    requires_comments: bool = False
    description: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "requiresFollowUp": self.requires_follow_up,
            "requiresComments": self.requires_comments,
        }
        if self.description:
            data["description"] = self.description
        return {"ifYes": data}


@dataclass(frozen=True)
class ExtractionHints:
    """Label and section hints handed to the external extraction stage."""
    labels: tuple[str, ...] = ()
    section: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"labels": list(self.labels)}
        if self.section:
            data["section"] = self.section
        return data


@dataclass(frozen=True)
class FieldRule:
    """Rule for a single extracted field."""
    required: bool
    validators: tuple[Validator, ...] = ()
    documentation_rule: Optional[DocumentationRule] = None
    extraction_hints: Optional[ExtractionHints] = None
    notes: Optional[str] = None
    kind: ClassVar[str] = "field"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "required": self.required,
            "validators": [v.to_dict() for v in self.validators],
        }
        if self.documentation_rule is not None:
            data["documentationRule"] = self.documentation_rule.to_dict()
        if self.extraction_hints is not None:
            data["extractionHints"] = self.extraction_hints.to_dict()
        if self.notes:
            data["notes"] = self.notes
        return data


@dataclass(frozen=True)
class ChecklistTask:
    """One tickbox/traffic-light question inside a checklist group."""
    task_id: str
    task: str
    result_type: ChecklistResultType
    required: bool = False
    killer_question: bool = False
    summary_question: bool = False
    expected_value: Any = None
    documentation_rule: Optional[DocumentationRule] = None
    notes: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "taskId": self.task_id,
            "task": self.task,
            "resultType": self.result_type.value,
            "required": self.required,
            "killerQuestion": self.killer_question,
            "summaryQuestion": self.summary_question,
        }
        if self.expected_value is not None:
            data["expectedValue"] = self.expected_value
        if self.documentation_rule is not None:
            data["documentationRule"] = self.documentation_rule.to_dict()
        if self.notes:
            data["notes"] = self.notes
        return data


@dataclass(frozen=True)
class ChecklistGroup:
    """Ordered group of checklist tasks."""
    items: tuple[ChecklistTask, ...] = ()
    notes: Optional[str] = None
    kind: ClassVar[str] = "checklistGroup"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.kind,
            "items": [t.to_dict() for t in self.items],
        }
        if self.notes:
            data["notes"] = self.notes
        return data


FieldRuleKind = Union[FieldRule, ChecklistGroup]


@dataclass(frozen=True)
class ValidationRule:
    """Template-level rule. DOC_AUDIT_* rules are evaluated by the rules engine."""
    rule_id: str
    description: str

    def to_dict(self) -> dict[str, Any]:
        return {"ruleId": self.rule_id, "description": self.description}


# =============================================================================
# Optional Extensions
# =============================================================================

@dataclass(frozen=True)
class RoiRegion:
    """Rectangle on a page where a field is expected."""
    name: str
    x: float
    y: float
    width: float
    height: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
        }


@dataclass(frozen=True)
class RoiDefinition:
    """Region-of-interest hints for one page of the form."""
    page_index_0_based: int
    regions: tuple[RoiRegion, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "pageIndex0Based": self.page_index_0_based,
            "regions": [r.to_dict() for r in self.regions],
        }


@dataclass(frozen=True)
class SelectionCriteria:
    """Token fingerprint used to recognize a document type from raw text."""
    required_tokens_all: tuple[str, ...] = ()
    required_tokens_any: tuple[str, ...] = ()
    optional_tokens: tuple[str, ...] = ()
    exclude_tokens: tuple[str, ...] = ()
    form_code_regex: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        """True when nothing can positively identify the template."""
        return (
            not self.required_tokens_all
            and not self.required_tokens_any
            and not self.form_code_regex
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "requiredTokensAll": list(self.required_tokens_all),
            "requiredTokensAny": list(self.required_tokens_any),
            "optionalTokens": list(self.optional_tokens),
            "excludeTokens": list(self.exclude_tokens),
        }
        if self.form_code_regex:
            data["formCodeRegex"] = self.form_code_regex
        return data


# =============================================================================
# Template
# =============================================================================

@dataclass(frozen=True)
class Template:
    """
    Versioned document schema.

    Immutable once built; corrections go through
    TemplateRegistry.replace_template, which re-validates and re-hashes.
    """
    template_id: str
    display_name: str
    version: str
    client: str
    document_type: str
    field_rules: dict[str, FieldRuleKind]
    validation_rules: tuple[ValidationRule, ...]
    description: str = ""
    selection: Optional[SelectionCriteria] = None
    asset_types: tuple[str, ...] = ()
    work_types: tuple[str, ...] = ()
    roi_optional: Optional[RoiDefinition] = None
    sample_files: tuple[str, ...] = ()

    def iter_checklist_tasks(self) -> Iterator[tuple[str, ChecklistTask]]:
        """Yield (group_name, task) for every checklist task in declaration order."""
        for name, rule in self.field_rules.items():
            if isinstance(rule, ChecklistGroup):
                for task in rule.items:
                    yield name, task

    def declared_field_names(self) -> set[str]:
        """Field rule names (checklist groups included) plus checklist task ids."""
        names = set(self.field_rules)
        names.update(task.task_id for _, task in self.iter_checklist_tasks())
        return names

    def to_dict(self) -> dict[str, Any]:
        """Normalized camelCase form; the registry hashes this."""
        data: dict[str, Any] = {
            "templateId": self.template_id,
            "displayName": self.display_name,
            "version": self.version,
            "client": self.client,
            "documentType": self.document_type,
            "description": self.description,
            "fieldRules": {name: rule.to_dict() for name, rule in self.field_rules.items()},
            "validationRules": [r.to_dict() for r in self.validation_rules],
        }
        if self.selection is not None:
            data["selection"] = self.selection.to_dict()
        if self.asset_types:
            data["assetTypes"] = list(self.asset_types)
        if self.work_types:
            data["workTypes"] = list(self.work_types)
        if self.roi_optional is not None:
            data["roiOptional"] = self.roi_optional.to_dict()
        if self.sample_files:
            data["sampleFiles"] = list(self.sample_files)
        return data


# =============================================================================
# Spec Pack
# =============================================================================

@dataclass(frozen=True)
class StatusLegendEntry:
    label: str
    meaning: str
    impact: str


@dataclass(frozen=True)
class SpecPackDefaults:
    """Pack-wide defaults shared by every template in the pack."""
    date_format: str = "DD/MM/YYYY"
    timezone: str = "Europe/London"
    review_queue_triggers: tuple[str, ...] = ()
    critical_fields: tuple[str, ...] = ()
    review_queue_trigger_mappings: dict[str, str] = field(default_factory=dict)
    checklist_status_legend: dict[str, StatusLegendEntry] = field(default_factory=dict)


@dataclass(frozen=True)
class AuditPerspective:
    """What the pack's audits judge: documentation quality, not asset health."""
    description: str
    pass_conditions: tuple[str, ...] = ()
    fail_conditions: tuple[str, ...] = ()


@dataclass(frozen=True)
class SpecPack:
    """A loaded spec pack. Templates are ordered by template_id."""
    pack_version: str
    pack_id: str
    display_name: str
    client: str
    defaults: SpecPackDefaults
    templates: tuple[Template, ...]
    created_at: Optional[str] = None
    audit_perspective: Optional[AuditPerspective] = None


# =============================================================================
# Registration
# =============================================================================

@dataclass
class TemplateRegistration:
    """
    Registry entry for one template id.

    template is None when the source could not be parsed at all; data
    always holds the source mapping so operators can inspect it.
    """
    template_id: str
    template: Optional[Template]
    data: dict[str, Any]
    pack_id: str
    pack_version: str
    hash: str
    status: TemplateStatus = TemplateStatus.INACTIVE
    validation_errors: list[str] = field(default_factory=list)
    registered_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def is_active(self) -> bool:
        return self.status == TemplateStatus.ACTIVE and self.template is not None

    @property
    def version(self) -> Optional[str]:
        if self.template is not None:
            return self.template.version
        value = self.data.get("version")
        return value if isinstance(value, str) else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "templateId": self.template_id,
            "packId": self.pack_id,
            "packVersion": self.pack_version,
            "registeredAt": self.registered_at,
            "hash": self.hash,
            "status": self.status.value,
            "validationErrors": list(self.validation_errors),
        }


@dataclass(frozen=True)
class RegistryStats:
    total_packs: int
    total_templates: int
    active_templates: int
    inactive_templates: int
    deprecated_templates: int
    last_updated: Optional[datetime]

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalPacks": self.total_packs,
            "totalTemplates": self.total_templates,
            "activeTemplates": self.active_templates,
            "inactiveTemplates": self.inactive_templates,
            "deprecatedTemplates": self.deprecated_templates,
            "lastUpdated": self.last_updated,
        }
