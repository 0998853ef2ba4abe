"""
Pytest configuration and fixtures for jobaudit tests.

Provides helper factories for spec pack data, extracted fields, fixture
cases and run results, plus registry fixtures loaded from the example packs.
"""
import copy
from datetime import datetime, timezone
from pathlib import Path

import pytest

from jobaudit.config import Settings
from jobaudit.engine import ConditionalRulesEngine, TemplateRegistry, TemplateSelector
from jobaudit.models import (
    ExtractedField,
    FixtureCase,
    FixtureOutcome,
    FixturePackRunResult,
    FixtureResult,
    FixtureStatus,
)
from jobaudit.packs import parse_template


PACKS_DIR = Path(__file__).parent.parent / "packs"
ACME_PACK = PACKS_DIR / "acme-spec-pack.json"
ACME_FIXTURES = PACKS_DIR / "fixtures" / "acme-gas-safety-fixtures.yaml"

GAS_SAFETY = "ACME_GAS_SAFETY_V1"
BOILER_SERVICE = "ACME_BOILER_SERVICE_V1"


# =============================================================================
# Factory Helpers
# =============================================================================

DEFAULT_FIELD_RULES = {
    "jobReference": {
        "required": True,
        "validators": [{"type": "regex", "pattern": r"^JOB-\d{6}$"}],
    },
    "assetId": {"required": True, "validators": [{"type": "minLength", "min": 3}]},
    "date": {"required": True, "validators": [{"type": "regex", "pattern": r"^\d{2}/\d{2}/\d{4}$"}]},
    "engineerSignature": {"required": True, "validators": [{"type": "required"}]},
    "expiryDate": {"required": False},
    "customerSignature": {"required": False},
    "engineerComments": {"required": False},
    "returnVisitNeeded": {"required": False},
    "complianceTickboxes": {
        "type": "checklistGroup",
        "items": [
            {
                "taskId": "gasTightnessTest",
                "task": "Gas tightness test passed",
                "resultType": "yesNo",
                "required": True,
                "killerQuestion": True,
            },
            {
                "taskId": "defectsFound",
                "task": "Defects found",
                "resultType": "yesNo",
                "documentationRule": {"ifYes": {"requiresFollowUp": True, "requiresComments": True}},
            },
            {
                "taskId": "applianceSafe",
                "task": "Appliance safe to use",
                "resultType": "yesNo",
                "required": True,
                "summaryQuestion": True,
            },
        ],
    },
}

DEFAULT_VALIDATION_RULES = [
    {"ruleId": "DOC_AUDIT_CONSISTENCY", "description": "Checklist answers must agree"},
    {"ruleId": "DOC_AUDIT_COMPLETENESS", "description": "Required fields and a signature must be present"},
]


def make_template_data(
    template_id: str = "TEST_GAS_SAFETY_V1",
    version: str = "1.0.0",
    client: str = "ACME",
    field_rules: dict = None,
    validation_rules: list = None,
    selection: dict = None,
    **extra,
) -> dict:
    """Create a camelCase template mapping that passes structural validation."""
    data = {
        "templateId": template_id,
        "displayName": template_id.replace("_", " ").title(),
        "version": version,
        "client": client,
        "documentType": "gas_safety_record",
        "fieldRules": copy.deepcopy(DEFAULT_FIELD_RULES if field_rules is None else field_rules),
        "validationRules": copy.deepcopy(
            DEFAULT_VALIDATION_RULES if validation_rules is None else validation_rules
        ),
        "selection": selection if selection is not None else {"requiredTokensAll": ["gas safety"]},
    }
    data.update(extra)
    return data


def make_template(**kwargs):
    """Create a Template model from make_template_data arguments."""
    template, errors = parse_template(make_template_data(**kwargs))
    assert not errors, errors
    return template


def make_pack_data(
    templates: list = None,
    pack_id: str = "test-pack",
    pack_version: str = "1.0.0",
    client: str = "ACME",
    critical_fields: list = None,
) -> dict:
    """Create a spec pack mapping around the given templates."""
    return {
        "packVersion": pack_version,
        "packId": pack_id,
        "displayName": "Test Pack",
        "client": client,
        "defaults": {
            "criticalFields": (
                ["jobReference", "assetId", "date", "engineerSignature"]
                if critical_fields is None else critical_fields
            ),
        },
        "templates": templates if templates is not None else [make_template_data()],
    }


def make_fields(**values) -> list:
    """Create ExtractedFields (confidence 1.0) from keyword values."""
    return [ExtractedField(field=name, value=value) for name, value in values.items()]


def documented_job(**overrides) -> dict:
    """Field values for a fully documented gas safety job."""
    values = {
        "jobReference": "JOB-123456",
        "assetId": "BLR-001",
        "date": "12/03/2026",
        "engineerSignature": "J. Smith",
        "gasTightnessTest": "yes",
        "defectsFound": "no",
        "applianceSafe": "yes",
    }
    values.update(overrides)
    return {k: v for k, v in values.items() if v is not None}


def make_case(
    fixture_id: str,
    expected_outcome: FixtureOutcome = FixtureOutcome.PASS,
    template_id: str = "TEST_GAS_SAFETY_V1",
    template_version: str = "1.0.0",
    expected_reason_codes: tuple = (),
    required_evidence_keys: tuple = (),
    description: str = "",
    input_data: dict = None,
    required: bool = True,
) -> FixtureCase:
    """Create a FixtureCase with required fields."""
    return FixtureCase(
        fixture_id=fixture_id,
        template_id=template_id,
        template_version=template_version,
        description=description or f"Case {fixture_id}",
        expected_outcome=expected_outcome,
        expected_reason_codes=tuple(expected_reason_codes),
        required_evidence_keys=tuple(required_evidence_keys),
        required=required,
        input_data=input_data or {},
    )


def make_run(
    template_id: str = "TEST_GAS_SAFETY_V1",
    template_version: str = "1.0.0",
    statuses: tuple = (FixtureStatus.PASSED,),
) -> FixturePackRunResult:
    """Create a FixturePackRunResult with one result per status."""
    now = datetime(2026, 1, 15, tzinfo=timezone.utc)
    results = [
        FixtureResult(
            fixture_id=f"FX-{i:03d}",
            status=status,
            expected_outcome=FixtureOutcome.PASS,
            actual_outcome=FixtureOutcome.PASS if status == FixtureStatus.PASSED else FixtureOutcome.FAIL,
        )
        for i, status in enumerate(statuses, start=1)
    ]
    failed = sum(1 for r in results if r.status == FixtureStatus.FAILED)
    errors = sum(1 for r in results if r.status == FixtureStatus.ERROR)
    return FixturePackRunResult(
        pack_id="test-fixtures",
        template_id=template_id,
        template_version=template_version,
        pack_hash="0" * 64,
        run_id="run_test",
        started_at=now,
        completed_at=now,
        results=results,
        passed=len(results) - failed - errors,
        failed=failed,
        errors=errors,
        ordering_stable=True,
        all_canonical=True,
        evidence_complete=True,
        overall_status=FixtureStatus.PASSED if not failed and not errors else FixtureStatus.FAILED,
    )


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def acme_registry(settings):
    """Registry loaded with the example ACME spec pack."""
    registry = TemplateRegistry(settings)
    result = registry.load_pack_file(ACME_PACK)
    assert result.ok, result.errors
    return registry


@pytest.fixture
def test_registry(settings):
    """Registry holding the default test template."""
    registry = TemplateRegistry(settings)
    result = registry.load_pack(make_pack_data())
    assert result.ok, result.errors
    return registry


@pytest.fixture
def engine(test_registry):
    return ConditionalRulesEngine(test_registry)


@pytest.fixture
def acme_selector(acme_registry):
    return TemplateSelector(acme_registry)
