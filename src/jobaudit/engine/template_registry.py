"""
jobaudit Template Registry

Single source of truth for versioned job-sheet templates.

Key features:
- Spec pack loading from mappings, YAML/JSON files or a directory
- Structural validation that collects every error (never fail-fast)
- Lifecycle: active, inactive, deprecated; only active templates are visible
- Activation gated by preconditions (fix paths included), fixture runs and
  the deployment ActivationPolicy; every attempt yields an activation report
- Change detection via SHA-256 of canonical JSON (key-order independent)

The registry is an explicit object: construct one at the entry point and
pass it to the selector, rules engine and runner. A fresh instance replaces
any reset.

Usage:
    registry = TemplateRegistry()
    result = registry.load_pack_file("packs/acme-spec-pack.json")
    template = registry.get_template("ACME_GAS_SAFETY_V1")
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from ..canon import content_hash
from ..config import Settings
from ..exceptions import PackLoadError, PackValidationError, TemplateNotFoundError
from ..models import (
    FixturePackRunResult,
    RegistryStats,
    SpecPack,
    Template,
    TemplateRegistration,
    TemplateStatus,
)
from ..packs import (
    convert_audit_perspective,
    convert_defaults,
    parse_pack_header,
    parse_template,
    read_pack_file,
)
from .activation import (
    ActivationIssue,
    ActivationPolicy,
    ActivationPreconditionResult,
    check_activation_policy,
    create_activation_report,
)

logger = logging.getLogger(__name__)


DEFAULT_PACK_PATTERN = "*-spec-pack.json"


# =============================================================================
# Results
# =============================================================================

@dataclass
class LoadPackResult:
    """
    Outcome of loading one spec pack.

    errors are pack-level: when present nothing was registered.
    template_errors maps template ids to structural errors; those
    templates were registered inactive.
    """
    pack: Optional[SpecPack]
    errors: list[str] = field(default_factory=list)
    template_errors: dict[str, list[str]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.pack is not None and not self.errors

    def raise_for_errors(self) -> SpecPack:
        """
        Return the pack, or raise when anything failed validation.

        Raises:
            PackValidationError: pack-level or template-level errors exist
        """
        if self.pack is None or self.errors or self.template_errors:
            raise PackValidationError(
                "Spec pack failed validation",
                details={
                    "errors": list(self.errors),
                    "templateErrors": {k: list(v) for k, v in sorted(self.template_errors.items())},
                },
            )
        return self.pack


@dataclass
class ActivationResult:
    success: bool
    errors: list[str] = field(default_factory=list)
    issues: list[ActivationIssue] = field(default_factory=list)
    warnings: list[ActivationIssue] = field(default_factory=list)
    report: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "errors": list(self.errors),
            "issues": [i.to_dict() for i in self.issues],
            "warnings": [w.to_dict() for w in self.warnings],
        }
        if self.report is not None:
            data["report"] = self.report
        return data


def compute_template_hash(template: Union[Template, Mapping[str, Any]]) -> str:
    """
    SHA-256 of the canonical JSON form of a template.

    Templates hash their normalized to_dict() form; raw mappings that parse
    are normalized first so formatting and key order never matter.
    """
    if isinstance(template, Template):
        return content_hash(template.to_dict())
    parsed, _ = parse_template(template)
    if parsed is not None:
        return content_hash(parsed.to_dict())
    return content_hash(dict(template))


# =============================================================================
# Registry
# =============================================================================

class TemplateRegistry:
    """
    Registry of templates keyed by templateId.

    Iteration order is always sorted by templateId.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or Settings()
        self._packs: dict[str, SpecPack] = {}
        self._registrations: dict[str, TemplateRegistration] = {}
        self._last_updated: Optional[datetime] = None

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def load_pack(self, data: Mapping[str, Any]) -> LoadPackResult:
        """
        Validate and register a spec pack.

        A pack-level error registers nothing. Template-level errors register
        the offending template inactive with its validation_errors.
        """
        header, errors = parse_pack_header(data)
        if header is None:
            logger.warning("Spec pack rejected with %d error(s)", len(errors))
            return LoadPackResult(pack=None, errors=errors)

        # A templateId belongs to one pack; only that pack may reload it
        conflicts = []
        for raw in header.templates:
            owner = self._registrations.get(raw["templateId"])
            if owner is not None and owner.pack_id != header.pack_id:
                conflicts.append(
                    f"templateId {raw['templateId']} already registered by pack {owner.pack_id}"
                )
        if conflicts:
            logger.warning("Spec pack %s rejected: %d templateId conflict(s)",
                           header.pack_id, len(conflicts), extra={"pack_id": header.pack_id})
            return LoadPackResult(pack=None, errors=conflicts)

        registrations: list[TemplateRegistration] = []
        template_errors: dict[str, list[str]] = {}
        templates: list[Template] = []

        for i, raw in enumerate(header.templates):
            template_id = raw["templateId"]
            template, errors = parse_template(raw, prefix=f"templates[{i}] ({template_id}).")
            if template is not None:
                templates.append(template)
                record_hash = content_hash(template.to_dict())
            else:
                template_errors[template_id] = errors
                record_hash = content_hash(dict(raw))
            registrations.append(TemplateRegistration(
                template_id=template_id,
                template=template,
                data=dict(raw),
                pack_id=header.pack_id,
                pack_version=header.pack_version,
                hash=record_hash,
                status=TemplateStatus.ACTIVE if template is not None else TemplateStatus.INACTIVE,
                validation_errors=list(errors),
            ))

        pack = SpecPack(
            pack_version=header.pack_version,
            pack_id=header.pack_id,
            display_name=header.display_name,
            client=header.client,
            defaults=convert_defaults(header.defaults),
            templates=tuple(sorted(templates, key=lambda t: t.template_id)),
            created_at=header.created_at,
            audit_perspective=convert_audit_perspective(header.audit_perspective),
        )

        # Reload replaces whatever the pack registered before
        previous = self._packs.get(pack.pack_id)
        if previous is not None:
            stale = [tid for tid, reg in self._registrations.items() if reg.pack_id == pack.pack_id]
            for template_id in stale:
                del self._registrations[template_id]
            logger.info("Reloading pack %s (replacing %d template(s))", pack.pack_id, len(stale),
                        extra={"pack_id": pack.pack_id})

        self._packs[pack.pack_id] = pack
        for registration in registrations:
            self._registrations[registration.template_id] = registration
            if registration.validation_errors:
                logger.warning(
                    "Template %s registered inactive: %d validation error(s)",
                    registration.template_id, len(registration.validation_errors),
                    extra={"template_id": registration.template_id, "pack_id": pack.pack_id},
                )
        self._touch()

        logger.info(
            "Loaded pack %s v%s: %d template(s), %d inactive",
            pack.pack_id, pack.pack_version, len(registrations), len(template_errors),
            extra={"pack_id": pack.pack_id},
        )
        return LoadPackResult(pack=pack, template_errors=template_errors)

    def load_pack_file(self, path: Union[str, Path]) -> LoadPackResult:
        """Read a YAML/JSON pack file and load it. Read errors come back as errors."""
        try:
            data = read_pack_file(path)
        except PackLoadError as e:
            logger.warning("Could not read spec pack %s: %s", path, e.message)
            return LoadPackResult(pack=None, errors=[e.message])
        return self.load_pack(data)

    def load_directory(
        self,
        directory: Union[str, Path, None] = None,
        pattern: str = DEFAULT_PACK_PATTERN,
    ) -> tuple[int, list[str]]:
        """
        Load every matching pack in a directory, in sorted file-name order.

        Returns:
            (packs loaded cleanly, errors prefixed with the file name)
        """
        directory = directory or self.settings.specs_dir
        if directory is None:
            return 0, ["No specs directory configured"]
        root = Path(directory)
        if not root.is_dir():
            return 0, [f"Specs directory not found: {root}"]

        loaded = 0
        errors: list[str] = []
        for path in sorted(root.glob(pattern)):
            result = self.load_pack_file(path)
            if result.errors:
                errors.extend(f"{path.name}: {e}" for e in result.errors)
            else:
                loaded += 1
        return loaded, errors

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def get_template(self, template_id: str) -> Optional[Template]:
        """The template, only while its registration is active."""
        registration = self._registrations.get(template_id)
        if registration is None or not registration.is_active:
            return None
        return registration.template

    def get_registration(self, template_id: str) -> Optional[TemplateRegistration]:
        return self._registrations.get(template_id)

    def require_registration(self, template_id: str) -> TemplateRegistration:
        """
        Get a registration or raise.

        Raises:
            TemplateNotFoundError: If the id was never registered
        """
        registration = self._registrations.get(template_id)
        if registration is None:
            raise TemplateNotFoundError(
                f"Template not found: {template_id}",
                template_id=template_id,
            )
        return registration

    def get_pack(self, pack_id: str) -> Optional[SpecPack]:
        return self._packs.get(pack_id)

    def get_pack_for_template(self, template_id: str) -> Optional[SpecPack]:
        registration = self._registrations.get(template_id)
        if registration is None:
            return None
        return self._packs.get(registration.pack_id)

    def get_active_templates(self) -> list[Template]:
        return [
            reg.template for _, reg in sorted(self._registrations.items())
            if reg.is_active
        ]

    def get_templates_by_client(self, client: str) -> list[Template]:
        return [t for t in self.get_active_templates() if t.client == client]

    def get_template_ids(self) -> list[str]:
        return sorted(self._registrations)

    def get_stats(self) -> RegistryStats:
        statuses = [r.status for r in self._registrations.values()]
        return RegistryStats(
            total_packs=len(self._packs),
            total_templates=len(statuses),
            active_templates=statuses.count(TemplateStatus.ACTIVE),
            inactive_templates=statuses.count(TemplateStatus.INACTIVE),
            deprecated_templates=statuses.count(TemplateStatus.DEPRECATED),
            last_updated=self._last_updated,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def activate_template(
        self,
        template_id: str,
        fixture_run: Optional[FixturePackRunResult] = None,
    ) -> ActivationResult:
        """
        Re-validate a template and flip it to active when nothing blocks.

        Blocking checks: structural validation, activation preconditions,
        the fixture gate (when a run is supplied or the policy requires one)
        and the ActivationPolicy built from settings. On failure the status is
        left unchanged. Parsed templates always carry an activation report.
        """
        registration = self._registrations.get(template_id)
        if registration is None:
            return ActivationResult(success=False, errors=[f"Template not found: {template_id}"])

        template, errors = parse_template(registration.data)
        registration.validation_errors = list(errors)

        checks = ActivationPreconditionResult()
        report = None
        if template is None:
            for error in errors:
                checks.block(ActivationIssue(
                    code="TEMPLATE_SCHEMA_INVALID",
                    message=error,
                    fix_path="Correct the template source and replace it",
                ))
        else:
            pack = self._packs.get(registration.pack_id)
            critical = pack.defaults.critical_fields if pack is not None else ()
            policy = ActivationPolicy.from_settings(self.settings)
            checks = check_activation_policy(template, critical, fixture_run, policy)
            report = create_activation_report(template, checks, fixture_run, policy)

        if not checks.allowed:
            logger.warning(
                "Activation blocked for %s: %s", template_id,
                ", ".join(sorted({i.code for i in checks.blocking_issues})),
                extra={"template_id": template_id},
            )
            return ActivationResult(
                success=False,
                errors=[i.message for i in checks.blocking_issues],
                issues=checks.blocking_issues,
                warnings=checks.warnings,
                report=report,
            )

        registration.template = template
        registration.hash = content_hash(template.to_dict())
        registration.status = TemplateStatus.ACTIVE
        self._touch()
        logger.info("Activated %s v%s", template_id, template.version,
                    extra={"template_id": template_id})
        return ActivationResult(success=True, warnings=checks.warnings, report=report)

    def deactivate_template(self, template_id: str) -> bool:
        return self._set_status(template_id, TemplateStatus.INACTIVE)

    def deprecate_template(self, template_id: str) -> bool:
        return self._set_status(template_id, TemplateStatus.DEPRECATED)

    def replace_template(self, template_id: str, candidate: Mapping[str, Any]) -> TemplateRegistration:
        """
        Swap in a corrected template source.

        The replacement is re-validated and re-hashed and stays inactive
        until activate_template succeeds.

        Raises:
            TemplateNotFoundError: If the id was never registered
        """
        registration = self.require_registration(template_id)
        if candidate.get("templateId") != template_id:
            raise TemplateNotFoundError(
                f"Replacement templateId {candidate.get('templateId')!r} does not match {template_id}",
                template_id=template_id,
            )
        template, errors = parse_template(candidate)
        registration.template = template
        registration.data = dict(candidate)
        registration.validation_errors = list(errors)
        registration.hash = compute_template_hash(template if template is not None else candidate)
        registration.status = TemplateStatus.INACTIVE
        registration.registered_at = datetime.now(timezone.utc)
        self._touch()
        logger.info("Replaced %s (%d validation error(s)); inactive until activated",
                    template_id, len(errors), extra={"template_id": template_id})
        return registration

    def has_template_changed(self, template_id: str,
                             candidate: Union[Template, Mapping[str, Any]]) -> bool:
        """Compare the candidate's hash with the registered one. Unknown ids count as changed."""
        registration = self._registrations.get(template_id)
        if registration is None:
            return True
        return compute_template_hash(candidate) != registration.hash

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _set_status(self, template_id: str, status: TemplateStatus) -> bool:
        registration = self._registrations.get(template_id)
        if registration is None:
            return False
        registration.status = status
        self._touch()
        logger.info("Template %s is now %s", template_id, status.value,
                    extra={"template_id": template_id})
        return True

    def _touch(self) -> None:
        self._last_updated = datetime.now(timezone.utc)
