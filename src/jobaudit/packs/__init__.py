"""
jobaudit Packs

Schemas and loaders for spec packs (templates) and fixture packs.
"""
from .fixtures import (
    compute_fixture_pack_hash,
    create_fixture_pack,
    load_fixture_pack,
    load_fixture_pack_file,
)
from .loader import (
    convert_audit_perspective,
    convert_defaults,
    convert_template,
    parse_pack_header,
    parse_template,
    read_pack_file,
)
from .schema import (
    SCHEMA_VERSION,
    SEMVER_PATTERN,
    TEMPLATE_ID_PATTERN,
    FixturePackSchema,
    SpecPackHeaderSchema,
    TemplateSchema,
    format_validation_errors,
)

__all__ = [
    # Schemas
    "SCHEMA_VERSION",
    "SEMVER_PATTERN",
    "TEMPLATE_ID_PATTERN",
    "FixturePackSchema",
    "SpecPackHeaderSchema",
    "TemplateSchema",
    "format_validation_errors",
    # Spec packs
    "convert_audit_perspective",
    "convert_defaults",
    "convert_template",
    "parse_pack_header",
    "parse_template",
    "read_pack_file",
    # Fixture packs
    "compute_fixture_pack_hash",
    "create_fixture_pack",
    "load_fixture_pack",
    "load_fixture_pack_file",
]
