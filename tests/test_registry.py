"""
Tests for the template registry.

Covers:
- Pack loading from mappings, files and directories
- Error collection (pack-level and per-template)
- Change detection hashes
- Lifecycle and activation gates
"""
import json

import pytest
import yaml

from jobaudit.engine import TemplateRegistry, compute_template_hash
from jobaudit.exceptions import PackValidationError, TemplateNotFoundError
from jobaudit.models import FixtureStatus, TemplateStatus

from tests.conftest import (
    BOILER_SERVICE,
    GAS_SAFETY,
    make_pack_data,
    make_run,
    make_template_data,
)


# =============================================================================
# Loading
# =============================================================================

class TestLoadPack:

    def test_example_pack_loads(self, acme_registry):
        assert acme_registry.get_template_ids() == [BOILER_SERVICE, GAS_SAFETY]
        template = acme_registry.get_template(GAS_SAFETY)
        assert template is not None
        assert template.version == "1.0.0"
        assert template.selection.form_code_regex == r"GS-\d{3}"

    def test_pack_defaults_and_perspective(self, acme_registry):
        pack = acme_registry.get_pack("acme-field-service")
        assert pack.defaults.critical_fields == ("jobReference", "assetId", "date", "engineerSignature")
        assert pack.defaults.review_queue_trigger_mappings["checklistConflict"] == "CONFLICT"
        assert pack.audit_perspective is not None
        assert [t.template_id for t in pack.templates] == [BOILER_SERVICE, GAS_SAFETY]
        assert acme_registry.get_pack_for_template(GAS_SAFETY) is pack

    def test_pack_level_error_registers_nothing(self):
        registry = TemplateRegistry()
        data = make_pack_data()
        data["packVersion"] = "one"
        result = registry.load_pack(data)
        assert not result.ok
        assert result.pack is None
        assert any("packVersion" in e for e in result.errors)
        assert registry.get_template_ids() == []

    def test_non_canonical_trigger_mapping_rejected(self):
        data = make_pack_data()
        data["defaults"]["reviewQueueTriggerMappings"] = {"lowOcr": "OCR_LOW"}
        result = TemplateRegistry().load_pack(data)
        assert not result.ok
        assert any("OCR_LOW" in e for e in result.errors)

    def test_duplicate_template_ids_rejected(self):
        data = make_pack_data(templates=[make_template_data(), make_template_data()])
        result = TemplateRegistry().load_pack(data)
        assert result.pack is None
        assert any("duplicates templateId" in e for e in result.errors)

    def test_template_id_owned_by_other_pack_rejected(self):
        registry = TemplateRegistry()
        first = make_pack_data(templates=[make_template_data("TEST_SHARED_V1")], pack_id="pack-a")
        second = make_pack_data(
            templates=[make_template_data("TEST_SHARED_V1", client="OTHER"),
                       make_template_data("TEST_EXTRA_V1")],
            pack_id="pack-b",
        )
        assert registry.load_pack(first).ok

        result = registry.load_pack(second)
        assert result.pack is None
        assert result.errors == ["templateId TEST_SHARED_V1 already registered by pack pack-a"]
        registration = registry.get_registration("TEST_SHARED_V1")
        assert registration.pack_id == "pack-a"
        assert registration.template.client == "ACME"
        assert registry.get_template_ids() == ["TEST_SHARED_V1"]
        assert registry.get_pack("pack-b") is None

    def test_same_pack_reload_keeps_ownership(self):
        registry = TemplateRegistry()
        data = make_pack_data(pack_id="pack-a")
        assert registry.load_pack(data).ok
        assert registry.load_pack(data).ok
        assert registry.get_registration("TEST_GAS_SAFETY_V1").pack_id == "pack-a"

    def test_template_errors_collected_not_fail_fast(self):
        bad = make_template_data(template_id="TEST_BAD_V1", version="1.0")
        del bad["validationRules"]
        bad["fieldRules"]["assetId"] = {"validators": []}
        registry = TemplateRegistry()
        result = registry.load_pack(make_pack_data(templates=[make_template_data(), bad]))

        assert result.ok
        errors = result.template_errors["TEST_BAD_V1"]
        assert len(errors) >= 3
        assert all(e.startswith("templates[1] (TEST_BAD_V1).") for e in errors)
        assert any("version" in e for e in errors)
        assert any("validationRules" in e for e in errors)
        assert any("assetId" in e and "required" in e for e in errors)

        registration = registry.get_registration("TEST_BAD_V1")
        assert registration.status == TemplateStatus.INACTIVE
        assert registration.template is None
        assert registration.validation_errors == errors
        assert registry.get_template("TEST_BAD_V1") is None
        assert registry.get_template("TEST_GAS_SAFETY_V1") is not None

    def test_unknown_validator_type_rejected(self):
        data = make_template_data()
        data["fieldRules"]["assetId"]["validators"] = [{"type": "luhn"}]
        result = TemplateRegistry().load_pack(make_pack_data(templates=[data]))
        assert "TEST_GAS_SAFETY_V1" in result.template_errors

    def test_duplicate_task_id_rejected(self):
        data = make_template_data()
        data["fieldRules"]["complianceTickboxes"]["items"].append({
            "taskId": "assetId", "task": "Asset tagged", "resultType": "yesNo",
        })
        result = TemplateRegistry().load_pack(make_pack_data(templates=[data]))
        assert any("Duplicate field or task id" in e for e in result.template_errors["TEST_GAS_SAFETY_V1"])

    def test_raise_for_errors(self):
        bad = make_template_data(template_id="TEST_BAD_V1", version="x")
        result = TemplateRegistry().load_pack(make_pack_data(templates=[bad]))
        with pytest.raises(PackValidationError) as exc_info:
            result.raise_for_errors()
        assert "TEST_BAD_V1" in exc_info.value.details["templateErrors"]

        clean = TemplateRegistry().load_pack(make_pack_data())
        assert clean.raise_for_errors().pack_id == "test-pack"

    def test_reload_replaces_pack_templates(self):
        registry = TemplateRegistry()
        registry.load_pack(make_pack_data(templates=[
            make_template_data(template_id="TEST_A_V1"),
            make_template_data(template_id="TEST_B_V1"),
        ]))
        registry.load_pack(make_pack_data(
            pack_version="1.1.0",
            templates=[make_template_data(template_id="TEST_A_V1", version="1.1.0")],
        ))
        assert registry.get_template_ids() == ["TEST_A_V1"]
        assert registry.get_template("TEST_A_V1").version == "1.1.0"
        assert registry.get_stats().total_packs == 1

    def test_load_missing_file(self, tmp_path):
        result = TemplateRegistry().load_pack_file(tmp_path / "nope-spec-pack.json")
        assert not result.ok
        assert "not found" in result.errors[0]

    def test_load_yaml_file(self, tmp_path):
        path = tmp_path / "test-spec-pack.yaml"
        path.write_text(yaml.safe_dump(make_pack_data()), encoding="utf-8")
        registry = TemplateRegistry()
        assert registry.load_pack_file(path).ok
        assert registry.get_template_ids() == ["TEST_GAS_SAFETY_V1"]

    def test_load_directory(self, tmp_path):
        (tmp_path / "a-spec-pack.json").write_text(json.dumps(make_pack_data()), encoding="utf-8")
        (tmp_path / "b-spec-pack.json").write_text("{not json", encoding="utf-8")
        (tmp_path / "notes.json").write_text("{}", encoding="utf-8")

        loaded, errors = TemplateRegistry().load_directory(tmp_path)
        assert loaded == 1
        assert len(errors) == 1
        assert errors[0].startswith("b-spec-pack.json: ")

    def test_load_directory_unconfigured_or_missing(self, tmp_path):
        assert TemplateRegistry().load_directory() == (0, ["No specs directory configured"])
        loaded, errors = TemplateRegistry().load_directory(tmp_path / "missing")
        assert loaded == 0
        assert errors[0].startswith("Specs directory not found")


# =============================================================================
# Lookups
# =============================================================================

class TestLookups:

    def test_require_registration(self, acme_registry):
        assert acme_registry.require_registration(GAS_SAFETY).pack_id == "acme-field-service"
        with pytest.raises(TemplateNotFoundError) as exc_info:
            acme_registry.require_registration("NOPE_V1")
        assert exc_info.value.template_id == "NOPE_V1"

    def test_templates_by_client(self, acme_registry):
        assert len(acme_registry.get_templates_by_client("ACME")) == 2
        assert acme_registry.get_templates_by_client("OTHER") == []

    def test_stats(self, acme_registry):
        acme_registry.deprecate_template(BOILER_SERVICE)
        stats = acme_registry.get_stats()
        assert stats.total_packs == 1
        assert stats.total_templates == 2
        assert stats.active_templates == 1
        assert stats.deprecated_templates == 1
        assert stats.inactive_templates == 0
        assert stats.last_updated is not None
        assert stats.to_dict()["activeTemplates"] == 1


# =============================================================================
# Change Detection
# =============================================================================

class TestTemplateHash:

    def test_hash_ignores_key_order(self):
        data = make_template_data()
        reordered = dict(reversed(list(data.items())))
        assert compute_template_hash(data) == compute_template_hash(reordered)

    def test_hash_matches_registered_template(self, test_registry):
        registration = test_registry.get_registration("TEST_GAS_SAFETY_V1")
        assert compute_template_hash(registration.template) == registration.hash
        assert compute_template_hash(make_template_data()) == registration.hash

    def test_has_template_changed(self, test_registry):
        assert not test_registry.has_template_changed("TEST_GAS_SAFETY_V1", make_template_data())
        changed = make_template_data()
        changed["fieldRules"]["assetId"]["validators"] = [{"type": "minLength", "min": 5}]
        assert test_registry.has_template_changed("TEST_GAS_SAFETY_V1", changed)
        assert test_registry.has_template_changed("UNKNOWN_V1", changed)


# =============================================================================
# Lifecycle
# =============================================================================

class TestLifecycle:

    def test_deactivate_hides_template(self, test_registry):
        assert test_registry.deactivate_template("TEST_GAS_SAFETY_V1")
        assert test_registry.get_template("TEST_GAS_SAFETY_V1") is None
        assert test_registry.get_active_templates() == []
        assert test_registry.get_registration("TEST_GAS_SAFETY_V1").status == TemplateStatus.INACTIVE

    def test_unknown_ids_return_false(self, test_registry):
        assert not test_registry.deactivate_template("NOPE_V1")
        assert not test_registry.deprecate_template("NOPE_V1")

    def test_reactivate(self, test_registry):
        test_registry.deactivate_template("TEST_GAS_SAFETY_V1")
        result = test_registry.activate_template("TEST_GAS_SAFETY_V1")
        assert result.success
        assert test_registry.get_template("TEST_GAS_SAFETY_V1") is not None

    def test_activate_unknown(self, test_registry):
        result = test_registry.activate_template("NOPE_V1")
        assert not result.success
        assert result.errors == ["Template not found: NOPE_V1"]

    def test_activation_blocked_by_preconditions(self):
        data = make_template_data(selection={}, validation_rules=[])
        del data["fieldRules"]["assetId"]
        registry = TemplateRegistry()
        registry.load_pack(make_pack_data(templates=[data]))
        registry.deactivate_template("TEST_GAS_SAFETY_V1")

        result = registry.activate_template("TEST_GAS_SAFETY_V1")
        codes = sorted(i.code for i in result.issues)
        assert not result.success
        assert codes == ["MISSING_CRITICAL_FIELD", "NO_VALIDATION_RULES", "SELECTION_CONFIG_EMPTY"]
        assert all(i.fix_path for i in result.issues)
        assert registry.get_registration("TEST_GAS_SAFETY_V1").status == TemplateStatus.INACTIVE

    def test_activation_with_passing_fixture_run(self, test_registry):
        test_registry.deactivate_template("TEST_GAS_SAFETY_V1")
        run = make_run(statuses=(FixtureStatus.PASSED, FixtureStatus.PASSED))
        assert test_registry.activate_template("TEST_GAS_SAFETY_V1", fixture_run=run).success

    def test_activation_blocked_by_failed_fixture_run(self, test_registry):
        test_registry.deactivate_template("TEST_GAS_SAFETY_V1")
        run = make_run(statuses=(FixtureStatus.PASSED, FixtureStatus.FAILED))
        result = test_registry.activate_template("TEST_GAS_SAFETY_V1", fixture_run=run)
        assert not result.success
        assert [i.code for i in result.issues] == ["FIXTURE_GATE_FAILED"]
        assert result.errors == ["1 fixture(s) failed"]

    def test_activation_blocked_by_run_for_other_version(self, test_registry):
        run = make_run(template_version="2.0.0")
        result = test_registry.activate_template("TEST_GAS_SAFETY_V1", fixture_run=run)
        assert [i.code for i in result.issues] == ["FIXTURE_TEMPLATE_MISMATCH"]

    def test_required_fixture_gate(self):
        from jobaudit.config import Settings

        registry = TemplateRegistry(Settings(require_fixture_gate=True))
        registry.load_pack(make_pack_data())
        result = registry.activate_template("TEST_GAS_SAFETY_V1")
        assert [i.code for i in result.issues] == ["FIXTURES_NOT_RUN"]
        assert registry.activate_template("TEST_GAS_SAFETY_V1", fixture_run=make_run()).success

    def test_activation_policy_from_settings(self):
        from jobaudit.config import Settings

        registry = TemplateRegistry(Settings(activation_min_selection_tokens=2))
        registry.load_pack(make_pack_data())
        registry.deactivate_template("TEST_GAS_SAFETY_V1")
        result = registry.activate_template("TEST_GAS_SAFETY_V1")
        assert not result.success
        assert [i.code for i in result.issues] == ["INSUFFICIENT_SELECTION_TOKENS"]
        assert result.report["policy"]["minSelectionTokens"] == 2
        assert result.report["policyCheck"]["violations"][0]["code"] == "INSUFFICIENT_SELECTION_TOKENS"

    def test_activation_attaches_report(self, test_registry):
        test_registry.deactivate_template("TEST_GAS_SAFETY_V1")
        run = make_run(statuses=(FixtureStatus.PASSED, FixtureStatus.PASSED))
        result = test_registry.activate_template("TEST_GAS_SAFETY_V1", fixture_run=run)
        assert result.success
        report = result.to_dict()["report"]
        assert report["allowed"]
        assert report["templateHash"] == test_registry.get_registration("TEST_GAS_SAFETY_V1").hash
        assert report["fixtureSummary"]["overallResult"] == "PASS"
        assert report["fixtureSummary"]["totalCases"] == 2

    def test_unknown_template_has_no_report(self, test_registry):
        assert test_registry.activate_template("NOPE_V1").report is None

    def test_replace_template_resets_to_inactive(self, test_registry):
        corrected = make_template_data()
        corrected["fieldRules"]["assetId"]["validators"] = [{"type": "minLength", "min": 5}]
        old_hash = test_registry.get_registration("TEST_GAS_SAFETY_V1").hash

        registration = test_registry.replace_template("TEST_GAS_SAFETY_V1", corrected)
        assert registration.status == TemplateStatus.INACTIVE
        assert registration.hash != old_hash
        assert registration.hash == compute_template_hash(corrected)
        assert test_registry.get_template("TEST_GAS_SAFETY_V1") is None

        assert test_registry.activate_template("TEST_GAS_SAFETY_V1").success
        assert not test_registry.has_template_changed("TEST_GAS_SAFETY_V1", corrected)

    def test_replace_with_invalid_template_blocks_activation(self, test_registry):
        broken = make_template_data(version="v2")
        test_registry.replace_template("TEST_GAS_SAFETY_V1", broken)
        result = test_registry.activate_template("TEST_GAS_SAFETY_V1")
        assert not result.success
        assert {i.code for i in result.issues} == {"TEMPLATE_SCHEMA_INVALID"}

    def test_replace_rejects_unknown_or_mismatched_id(self, test_registry):
        with pytest.raises(TemplateNotFoundError):
            test_registry.replace_template("NOPE_V1", make_template_data(template_id="NOPE_V1"))
        with pytest.raises(TemplateNotFoundError):
            test_registry.replace_template("TEST_GAS_SAFETY_V1", make_template_data(template_id="OTHER_V1"))

    def test_acme_pack_templates_activate(self, acme_registry):
        for template_id in acme_registry.get_template_ids():
            acme_registry.deactivate_template(template_id)
            result = acme_registry.activate_template(template_id)
            assert result.success, result.errors
            assert result.warnings == []
