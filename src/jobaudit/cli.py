"""
jobaudit CLI

Command-line interface for pack validation, template selection, document
evaluation and fixture runs.

Usage:
    jobaudit validate-pack packs/acme-spec-pack.json
    jobaudit select --packs packs --text job-sheet.txt --client ACME
    jobaudit evaluate --packs packs --template ACME_GAS_SAFETY_V1 --fields fields.json
    jobaudit run-fixtures --packs packs packs/fixtures/acme-gas-safety-fixtures.yaml

Exit codes: 0 success, 1 validation/activation blocked, 2 operator error.
"""
from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional, Sequence

from .canon import canonical_json
from .config import Settings
from .engine import (
    ActivationPolicy,
    ConditionalRulesEngine,
    FixtureMatrixRunner,
    TemplateRegistry,
    TemplateSelector,
    check_activation_gate,
    check_activation_policy,
    create_activation_report,
    create_selection_artifact,
    fields_from_input,
    make_rules_engine_validator,
    validate_fixture_pack,
    write_activation_report,
    write_selection_artifact,
)
from .exceptions import JobAuditError
from .logging_config import configure_logging
from .models import DocumentContext
from .packs import load_fixture_pack_file, read_pack_file


def _build_registry(args: argparse.Namespace, settings: Settings) -> TemplateRegistry:
    registry = TemplateRegistry(settings)
    packs_dir = args.packs or settings.specs_dir
    if packs_dir is None:
        raise JobAuditError("No packs directory given (use --packs or JOBAUDIT_SPECS_DIR)",
                            code="JA_CLI_USAGE_ERROR")
    loaded, errors = registry.load_directory(packs_dir, pattern=args.pattern)
    for error in errors:
        print(f"  [WARN] {error}", file=sys.stderr)
    if loaded == 0 and errors:
        raise JobAuditError(f"No spec packs could be loaded from {packs_dir}",
                            code="JA_CLI_USAGE_ERROR")
    return registry


# =============================================================================
# Commands
# =============================================================================

def cmd_validate_pack(args: argparse.Namespace, settings: Settings) -> int:
    """Validate spec packs and report structural and activation issues."""
    policy = ActivationPolicy.from_settings(settings)
    failures = 0
    for path in args.paths:
        print(f"\n{'=' * 60}")
        print(f"Validating: {path}")
        print("=" * 60)

        registry = TemplateRegistry(settings)
        result = registry.load_pack_file(path)
        if result.pack is None:
            failures += 1
            print(f"  [ERROR] Pack rejected ({len(result.errors)} error(s))")
            for error in result.errors:
                print(f"    - {error}")
            continue

        pack = result.pack
        print(f"  [OK] {pack.pack_id} v{pack.pack_version}: "
              f"{len(registry.get_template_ids())} template(s)")

        for template_id, errors in sorted(result.template_errors.items()):
            failures += 1
            print(f"  [ERROR] {template_id}: {len(errors)} structural error(s)")
            for error in errors:
                print(f"    - {error}")

        for template in pack.templates:
            checks = check_activation_policy(template, pack.defaults.critical_fields, policy=policy)
            if args.report_dir:
                report = create_activation_report(template, checks, policy=policy)
                write_activation_report(report, args.report_dir)
            if checks.allowed:
                print(f"  [OK] {template.template_id} v{template.version} can be activated")
            else:
                failures += 1
                print(f"  [BLOCKED] {template.template_id} v{template.version}")
                for issue in checks.blocking_issues:
                    print(f"    - {issue.code}: {issue.message}")
                    if issue.fix_path:
                        print(f"      fix: {issue.fix_path}")
            for warning in checks.warnings:
                print(f"    [WARN] {warning.code}: {warning.message}")

    print(f"\n{'=' * 60}")
    print(f"Packs checked: {len(args.paths)}, problems: {failures}")
    return 1 if failures else 0


def cmd_select(args: argparse.Namespace, settings: Settings) -> int:
    """Select a template for a document's extracted text."""
    registry = _build_registry(args, settings)
    selector = TemplateSelector(registry)

    text = Path(args.text).read_text(encoding="utf-8")
    result = selector.select_template(DocumentContext(
        extracted_text=text,
        client=args.client,
        asset_type=args.asset_type,
        work_type=args.work_type,
        form_code=args.form_code,
        explicit_template_id=args.template_id,
    ))

    if args.artifact_dir:
        path = write_selection_artifact(result.trace, args.artifact_dir)
        print(f"Selection artifact written to {path}", file=sys.stderr)
    for warning in result.warnings:
        print(f"  [WARN] {warning}", file=sys.stderr)
    print(canonical_json(create_selection_artifact(result.trace)))
    return 0


def cmd_evaluate(args: argparse.Namespace, settings: Settings) -> int:
    """Evaluate extracted fields against an active template."""
    registry = _build_registry(args, settings)
    engine = ConditionalRulesEngine(registry, settings)

    fields = fields_from_input(read_pack_file(args.fields))
    result = engine.evaluate_document(args.template, fields)
    print(canonical_json(result.to_dict()))
    return 0


def cmd_run_fixtures(args: argparse.Namespace, settings: Settings) -> int:
    """Run fixture packs through the rules engine and report the activation gate."""
    registry = _build_registry(args, settings)
    engine = ConditionalRulesEngine(registry, settings)
    runner = FixtureMatrixRunner.from_settings(make_rules_engine_validator(engine), settings)

    blocked = 0
    for path in args.fixture_packs:
        pack = load_fixture_pack_file(path)
        validation = validate_fixture_pack(pack)
        run = asyncio.run(runner.run_pack(pack))
        gate = check_activation_gate(run)

        if args.json:
            print(canonical_json({
                "validation": {
                    "valid": validation.valid,
                    "errors": list(validation.errors),
                    "warnings": list(validation.warnings),
                },
                "run": run.to_dict(),
                "gate": gate.to_dict(),
            }))
        else:
            print(f"\n{'=' * 60}")
            print(f"Fixture pack: {pack.pack_id} ({pack.template_id} v{pack.template_version})")
            print("=" * 60)
            for error in validation.errors:
                print(f"  [ERROR] {error}")
            for warning in validation.warnings:
                print(f"  [WARN] {warning}")
            for result in run.results:
                print(f"  [{result.status.value.upper()}] {result.fixture_id}")
                for error in result.errors:
                    print(f"    - {error}")
            print(f"\n  Passed: {run.passed}  Failed: {run.failed}  Errors: {run.errors}")
            print(f"  Activation gate: {'OPEN' if gate.can_activate else 'BLOCKED'}")
            for reason in gate.reasons:
                print(f"    - {reason}")

        if not gate.can_activate or not validation.valid:
            blocked += 1

    return 1 if blocked else 0


# =============================================================================
# Entry Point
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="jobaudit job-sheet template validation CLI",
        prog="jobaudit",
    )
    parser.add_argument("--config", help="YAML settings file (environment variables override it)")
    parser.add_argument("--log-level", help="Override JOBAUDIT_LOG_LEVEL")
    parser.add_argument("--log-json", action="store_true", help="Emit JSON log lines")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    validate_parser = subparsers.add_parser("validate-pack", help="Validate spec pack files")
    validate_parser.add_argument("paths", nargs="+", help="Spec pack files (JSON or YAML)")
    validate_parser.add_argument("--report-dir", help="Write an activation report per template here")
    validate_parser.set_defaults(func=cmd_validate_pack)

    def add_packs_args(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--packs", help="Directory of spec packs (default JOBAUDIT_SPECS_DIR)")
        sub.add_argument("--pattern", default="*-spec-pack.json", help="Spec pack file glob")

    select_parser = subparsers.add_parser("select", help="Select a template for a document")
    add_packs_args(select_parser)
    select_parser.add_argument("--text", required=True, help="File with the extracted text")
    select_parser.add_argument("--client")
    select_parser.add_argument("--asset-type")
    select_parser.add_argument("--work-type")
    select_parser.add_argument("--form-code")
    select_parser.add_argument("--template-id", help="Explicit template id")
    select_parser.add_argument("--artifact-dir", help="Write the selection artifact here")
    select_parser.set_defaults(func=cmd_select)

    evaluate_parser = subparsers.add_parser("evaluate", help="Evaluate extracted fields")
    add_packs_args(evaluate_parser)
    evaluate_parser.add_argument("--template", required=True, help="Template id")
    evaluate_parser.add_argument("--fields", required=True,
                                 help="JSON/YAML file with 'fields' or 'extractedFields'")
    evaluate_parser.set_defaults(func=cmd_evaluate)

    fixtures_parser = subparsers.add_parser("run-fixtures", help="Run fixture packs")
    add_packs_args(fixtures_parser)
    fixtures_parser.add_argument("fixture_packs", nargs="+", help="Fixture pack files")
    fixtures_parser.add_argument("--json", action="store_true", help="Print canonical JSON reports")
    fixtures_parser.set_defaults(func=cmd_run_fixtures)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        base = Settings.from_yaml(args.config) if args.config else None
        settings = Settings.from_env(base=base)
        configure_logging(
            level=args.log_level or settings.log_level,
            json_output=args.log_json or settings.log_json,
        )
        return args.func(args, settings)
    except JobAuditError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 2
    except OSError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
