"""
Tests for ROI validation and template activation gates.
"""
import json
from dataclasses import replace

import pytest

from jobaudit.canon import canonical_json
from jobaudit.config import Settings
from jobaudit.engine import (
    CRITICAL_ROI_NAMES,
    ActivationIssue,
    ActivationPolicy,
    ActivationPreconditionResult,
    check_activation_policy,
    check_activation_preconditions,
    check_fixture_gate,
    compute_template_hash,
    create_activation_report,
    find_region,
    format_activation_error,
    missing_critical_rois,
    regions_overlap,
    validate_roi,
    write_activation_report,
)
from jobaudit.models import FixtureStatus, RoiDefinition, RoiRegion

from tests.conftest import DEFAULT_FIELD_RULES, make_run, make_template


CRITICAL = ["jobReference", "assetId", "date", "engineerSignature"]


def roi(*regions, page=0):
    return RoiDefinition(page_index_0_based=page, regions=tuple(RoiRegion(*r) for r in regions))


def roi_data(*regions):
    return {
        "pageIndex0Based": 0,
        "regions": [
            {"name": n, "x": x, "y": y, "width": w, "height": h}
            for n, x, y, w, h in regions
        ],
    }


# =============================================================================
# ROI Geometry
# =============================================================================

class TestValidateRoi:

    def test_valid_definition(self):
        result = validate_roi(roi(
            ("header", 0, 0, 1, 0.1),
            ("jobReference", 0, 0.1, 0.5, 0.05),
        ))
        assert result.valid
        assert result.errors == ()
        assert result.warnings == ()

    def test_overlapping_regions(self):
        result = validate_roi(roi(
            ("header", 0, 0, 0.5, 0.5),
            ("date", 0.25, 0.25, 0.5, 0.5),
        ))
        assert not result.valid
        assert result.errors == ("ROI regions 'header' and 'date' overlap",)

    def test_shared_edge_is_not_overlap(self):
        a = RoiRegion("header", 0, 0, 1, 0.1)
        b = RoiRegion("date", 0, 0.1, 1, 0.1)
        assert not regions_overlap(a, b)
        assert validate_roi(roi(("header", 0, 0, 1, 0.1), ("date", 0, 0.1, 1, 0.1))).valid

    def test_region_shape_errors(self):
        result = validate_roi(roi(
            ("", 0, 0, 0.1, 0.1),
            ("date", -0.1, 0.5, 0.1, 0.1),
            ("assetId", 0.7, 0.7, 0, 0.1),
        ))
        assert result.errors == (
            "roiOptional.regions[0]: name is required",
            "roiOptional.regions[1]: x and y must be >= 0",
            "roiOptional.regions[2]: width and height must be > 0",
        )

    def test_duplicate_names(self):
        result = validate_roi(roi(("date", 0, 0, 0.1, 0.1), ("date", 0.5, 0.5, 0.1, 0.1)))
        assert result.errors == ("Duplicate ROI region names: date",)

    def test_negative_page_index(self):
        result = validate_roi(roi(("header", 0, 0, 1, 0.1), page=-1))
        assert "roiOptional.pageIndex0Based must be >= 0" in result.errors

    def test_warnings_do_not_invalidate(self):
        result = validate_roi(roi(
            ("header", 0.5, 0, 0.6, 0.1),
            ("stampBox", 0, 0.5, 0.2, 0.2),
        ))
        assert result.valid
        assert result.warnings == (
            "roiOptional.regions[0]: x + width exceeds page boundary",
            "roiOptional.regions[1]: 'stampBox' is not a standard ROI type",
        )

    def test_pixel_coordinates_skip_boundary_check(self):
        result = validate_roi(roi(("header", 100, 0, 1200, 80)))
        assert result.warnings == ()


class TestFindRegion:

    @pytest.fixture
    def definition(self):
        return roi(("header", 0, 0, 1, 0.1), ("date", 0, 0.1, 1, 0.1))

    def test_point_inside(self, definition):
        assert find_region(definition, 0, 0.5, 0.15).name == "date"

    def test_shared_edge_resolves_to_first_declared(self, definition):
        assert find_region(definition, 0, 0.5, 0.1).name == "header"

    def test_outside_or_other_page(self, definition):
        assert find_region(definition, 0, 0.5, 0.5) is None
        assert find_region(definition, 1, 0.5, 0.05) is None
        assert find_region(None, 0, 0.5, 0.05) is None


# =============================================================================
# Activation Preconditions
# =============================================================================

class TestActivationPreconditions:

    def test_complete_template_allowed(self):
        result = check_activation_preconditions(make_template(), CRITICAL)
        assert result.allowed
        assert result.blocking_issues == []
        assert result.warnings == []

    def test_default_critical_fields_apply(self):
        result = check_activation_preconditions(make_template())
        assert not result.allowed
        [issue] = result.blocking_issues
        assert issue.code == "MISSING_CRITICAL_FIELD"
        assert issue.field == "engineerSignOff"
        assert issue.fix_path == "Add a field rule for 'engineerSignOff' to fieldRules"

    def test_optional_critical_field_warns(self):
        result = check_activation_preconditions(make_template(), ["expiryDate"])
        assert result.allowed
        assert [w.code for w in result.warnings] == ["CRITICAL_FIELD_OPTIONAL"]

    def test_task_id_counts_as_declared(self):
        result = check_activation_preconditions(make_template(), ["gasTightnessTest"])
        assert result.allowed

    def test_recommended_fields_warn(self):
        rules = {k: v for k, v in DEFAULT_FIELD_RULES.items() if k not in ("expiryDate", "customerSignature")}
        result = check_activation_preconditions(make_template(field_rules=rules), CRITICAL)
        assert result.allowed
        assert [w.field for w in result.warnings] == ["expiryDate", "customerSignature"]

    def test_empty_selection_blocks(self):
        result = check_activation_preconditions(make_template(selection={"optionalTokens": ["boiler"]}), CRITICAL)
        assert [i.code for i in result.blocking_issues] == ["SELECTION_CONFIG_EMPTY"]

    def test_form_code_alone_is_enough(self):
        template = make_template(selection={"formCodeRegex": r"\bGS-\d{3}\b"})
        assert check_activation_preconditions(template, CRITICAL).allowed

    def test_no_validation_rules_blocks(self):
        result = check_activation_preconditions(make_template(validation_rules=[]), CRITICAL)
        assert [i.code for i in result.blocking_issues] == ["NO_VALIDATION_RULES"]

    def test_invalid_roi_blocks(self):
        template = make_template(roiOptional=roi_data(
            ("header", 0, 0, 0.5, 0.5),
            ("date", 0.25, 0.25, 0.5, 0.5),
        ))
        result = check_activation_preconditions(template, CRITICAL)
        assert [i.code for i in result.blocking_issues] == ["ROI_INVALID"]
        assert result.blocking_issues[0].message == "ROI regions 'header' and 'date' overlap"

    def test_roi_warnings_carried(self):
        template = make_template(roiOptional=roi_data(("stampBox", 0, 0, 0.2, 0.2)))
        result = check_activation_preconditions(template, CRITICAL)
        assert result.allowed
        assert [w.code for w in result.warnings] == ["ROI_WARNING"]


class TestFixtureGate:

    def test_no_run_when_not_required(self):
        assert check_fixture_gate(make_template(), None, required=False).allowed

    def test_no_run_when_required(self):
        result = check_fixture_gate(make_template(), None, required=True)
        [issue] = result.blocking_issues
        assert issue.code == "FIXTURES_NOT_RUN"
        assert issue.fix_path == "Run the fixture pack for TEST_GAS_SAFETY_V1 v1.0.0 and pass the run result"

    def test_passing_run(self):
        assert check_fixture_gate(make_template(), make_run(), required=True).allowed

    def test_run_for_other_version(self):
        result = check_fixture_gate(make_template(), make_run(template_version="1.1.0"), required=False)
        [issue] = result.blocking_issues
        assert issue.code == "FIXTURE_TEMPLATE_MISMATCH"
        assert issue.message == (
            "Fixture run targets TEST_GAS_SAFETY_V1 v1.1.0, not TEST_GAS_SAFETY_V1 v1.0.0"
        )

    def test_failed_run(self):
        run = make_run(statuses=(FixtureStatus.PASSED, FixtureStatus.FAILED, FixtureStatus.ERROR))
        result = check_fixture_gate(make_template(), run, required=True)
        assert [i.message for i in result.blocking_issues] == [
            "1 fixture(s) failed",
            "1 fixture(s) had errors",
        ]
        assert {i.code for i in result.blocking_issues} == {"FIXTURE_GATE_FAILED"}


class TestActivationErrors:

    def test_extend_merges_blocks_and_warnings(self):
        base = ActivationPreconditionResult()
        other = ActivationPreconditionResult()
        other.block(ActivationIssue(code="NO_VALIDATION_RULES", message="x"))
        other.warnings.append(ActivationIssue(code="ROI_WARNING", message="y"))
        base.extend(other)
        assert not base.allowed
        assert len(base.blocking_issues) == 1
        assert len(base.warnings) == 1

    def test_issue_to_dict_omits_empty_keys(self):
        assert ActivationIssue(code="ROI_WARNING", message="m").to_dict() == {
            "code": "ROI_WARNING", "message": "m",
        }

    def test_format_lists_issues_and_fix_paths(self):
        template = make_template(validation_rules=[])
        message = format_activation_error(check_activation_preconditions(template))
        assert message.startswith("PIPELINE_ERROR: Activation preconditions not met.")
        assert "- MISSING_CRITICAL_FIELD: Critical field 'engineerSignOff' is missing from template" in message
        assert "- NO_VALIDATION_RULES: Template must have at least one validation rule" in message
        assert "  MISSING_CRITICAL_FIELD:engineerSignOff: Add a field rule for 'engineerSignOff' to fieldRules" in message
        assert "  NO_VALIDATION_RULES: Add at least one rule to validationRules" in message


# =============================================================================
# Activation Policy
# =============================================================================

PARTIAL_ROI = roi_data(
    ("jobReference", 0, 0, 0.5, 0.1),
    ("assetId", 0.5, 0, 0.5, 0.1),
    ("date", 0, 0.1, 0.5, 0.1),
)


class TestActivationPolicy:

    def test_default_policy_adds_nothing(self):
        result = check_activation_policy(make_template(), CRITICAL)
        assert result.allowed
        assert result.warnings == []

    def test_fixture_run_required(self):
        policy = ActivationPolicy(require_fixture_run=True)
        result = check_activation_policy(make_template(), CRITICAL, policy=policy)
        assert [i.code for i in result.blocking_issues] == ["FIXTURES_NOT_RUN"]
        assert check_activation_policy(make_template(), CRITICAL, make_run(), policy).allowed

    def test_form_code_only_fails_token_minimum(self):
        template = make_template(selection={"formCodeRegex": r"\bGS-\d{3}\b"})
        result = check_activation_policy(template, CRITICAL, policy=ActivationPolicy(min_selection_tokens=1))
        [issue] = result.blocking_issues
        assert issue.code == "INSUFFICIENT_SELECTION_TOKENS"
        assert issue.message == "Selection config has 0 required token(s), minimum 1 required"

    def test_critical_rois_required(self):
        template = make_template(roiOptional=PARTIAL_ROI)
        policy = ActivationPolicy(require_critical_rois=True, allowed_missing_rois=("expiryDate",))
        result = check_activation_policy(template, CRITICAL, policy=policy)
        assert [i.message for i in result.blocking_issues] == [
            "Missing critical ROIs: tickboxBlock, signatureBlock",
        ]
        assert [(w.code, w.message) for w in result.warnings] == [
            ("ALLOWED_MISSING_ROIS", "ROIs allowed to be missing by policy: expiryDate"),
        ]

    def test_every_critical_roi_missing_without_config(self):
        assert missing_critical_rois(None) == list(CRITICAL_ROI_NAMES)

    def test_from_settings(self):
        settings = Settings.from_env({
            "JOBAUDIT_REQUIRE_FIXTURE_GATE": "yes",
            "JOBAUDIT_ACTIVATION_MIN_SELECTION_TOKENS": "2",
            "JOBAUDIT_ACTIVATION_REQUIRE_CRITICAL_ROIS": "true",
            "JOBAUDIT_ACTIVATION_ALLOWED_MISSING_ROIS": "expiryDate, tickboxBlock",
        })
        assert ActivationPolicy.from_settings(settings) == ActivationPolicy(
            require_fixture_run=True,
            min_selection_tokens=2,
            require_critical_rois=True,
            allowed_missing_rois=("expiryDate", "tickboxBlock"),
        )


class TestActivationReport:

    def test_report_without_fixture_run(self):
        template = make_template()
        report = create_activation_report(template, check_activation_policy(template, CRITICAL))
        assert report["reportVersion"] == "1.0.0"
        assert report["templateId"] == "TEST_GAS_SAFETY_V1"
        assert report["templateVersion"] == "1.0.0"
        assert report["templateHash"] == compute_template_hash(template)
        assert report["allowed"]
        assert report["policy"] == {
            "requireFixtureRun": False,
            "minSelectionTokens": 0,
            "requireCriticalRois": False,
            "allowedMissingRois": [],
        }
        assert report["fixtureSummary"]["overallResult"] == "NOT_RUN"
        assert report["fixtureSummary"]["totalCases"] == 0
        assert report["roiPresence"] == {
            "hasRoiConfig": False,
            "criticalRoisPresent": [],
            "criticalRoisMissing": list(CRITICAL_ROI_NAMES),
            "allowedMissingRois": [],
        }
        assert report["selectionConfigSummary"] == {
            "hasRequiredTokens": True,
            "hasFormCodeRegex": False,
            "tokenCount": 1,
        }

    def test_report_records_blocked_activation(self):
        template = make_template(roiOptional=PARTIAL_ROI)
        policy = ActivationPolicy(require_critical_rois=True, allowed_missing_rois=("expiryDate",))
        run = make_run(statuses=(FixtureStatus.PASSED, FixtureStatus.FAILED))
        report = create_activation_report(
            template, check_activation_policy(template, CRITICAL, run, policy), run, policy,
        )
        assert not report["allowed"]
        assert [v["code"] for v in report["policyCheck"]["violations"]] == [
            "FIXTURE_GATE_FAILED",
            "MISSING_CRITICAL_ROIS",
        ]
        assert report["fixtureSummary"] == {
            "hasFixtureRun": True,
            "packId": "test-fixtures",
            "packHash": "0" * 64,
            "totalCases": 2,
            "passedCases": 1,
            "failedCases": 1,
            "errorCases": 0,
            "overallResult": "FAIL",
        }
        assert report["roiPresence"]["criticalRoisPresent"] == ["jobReference", "assetId", "date"]
        assert report["roiPresence"]["allowedMissingRois"] == ["expiryDate"]

    def test_selection_summary_counts_optional_tokens(self):
        template = make_template(selection={
            "requiredTokensAny": ["boiler", "gas"],
            "optionalTokens": ["flue"],
            "formCodeRegex": r"GS-\d{3}",
        })
        report = create_activation_report(template, check_activation_policy(template, CRITICAL))
        assert report["selectionConfigSummary"] == {
            "hasRequiredTokens": True,
            "hasFormCodeRegex": True,
            "tokenCount": 3,
        }

    def test_report_ignores_run_identity(self):
        template = make_template()
        run = make_run()
        other = replace(run, run_id="run_other")
        first = create_activation_report(template, check_activation_policy(template, CRITICAL, run), run)
        second = create_activation_report(template, check_activation_policy(template, CRITICAL, other), other)
        assert canonical_json(first) == canonical_json(second)

    def test_write_report(self, tmp_path):
        template = make_template()
        report = create_activation_report(template, check_activation_policy(template, CRITICAL))
        path = write_activation_report(report, tmp_path / "reports")
        assert path.name == "activation-TEST_GAS_SAFETY_V1-v1.0.0.json"
        assert json.loads(path.read_text(encoding="utf-8")) == report
