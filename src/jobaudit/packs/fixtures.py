"""
jobaudit Fixture Pack Loader

Builds hash-stamped fixture packs from files, mappings or in-memory cases.

Cases are always stored sorted by fixture id and the pack hash is computed
over that sorted list, so neither file order nor construction order can
change a pack's identity.
"""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Union

from pydantic import ValidationError

from ..canon import content_hash
from ..exceptions import FixturePackError, PackLoadError
from ..models import FixtureCase, FixtureOutcome, FixturePack
from .loader import read_pack_file
from .schema import FixtureCaseSchema, FixturePackSchema, format_validation_errors


def _sorted_cases(cases: Iterable[FixtureCase]) -> list[FixtureCase]:
    return sorted(cases, key=lambda c: c.fixture_id)


def compute_fixture_pack_hash(cases: Iterable[FixtureCase]) -> str:
    """SHA-256 of the canonical JSON of the cases sorted by fixture id."""
    return content_hash([c.to_dict() for c in _sorted_cases(cases)])


def create_fixture_pack(
    pack_id: str,
    template_id: str,
    template_version: str,
    cases: Iterable[FixtureCase],
    created_at: Optional[str] = None,
) -> FixturePack:
    """Build a FixturePack with canonical case order and its hash."""
    ordered = _sorted_cases(cases)
    return FixturePack(
        pack_id=pack_id,
        template_id=template_id,
        template_version=template_version,
        fixtures=tuple(ordered),
        hash=compute_fixture_pack_hash(ordered),
        created_at=created_at or datetime.now(timezone.utc).isoformat(),
    )


def _convert_case(schema: FixtureCaseSchema, pack: FixturePackSchema) -> FixtureCase:
    return FixtureCase(
        fixture_id=schema.fixture_id,
        template_id=schema.template_id or pack.template_id,
        template_version=schema.template_version or pack.template_version,
        description=schema.description,
        expected_outcome=FixtureOutcome(schema.expected_outcome),
        expected_reason_codes=tuple(schema.expected_reason_codes),
        required_evidence_keys=tuple(schema.required_evidence_keys),
        required=schema.required,
        input_data=dict(schema.input_data),
        input_file=schema.input_file,
    )


def load_fixture_pack(data: Mapping[str, Any]) -> FixturePack:
    """
    Validate a fixture pack mapping and build the pack.

    Raises:
        FixturePackError: with every schema error in details["errors"]
    """
    try:
        schema = FixturePackSchema.model_validate(dict(data))
    except ValidationError as e:
        errors = format_validation_errors(e)
        raise FixturePackError(
            f"Invalid fixture pack: {len(errors)} error(s)",
            details={"errors": errors},
        ) from e
    return create_fixture_pack(
        pack_id=schema.pack_id,
        template_id=schema.template_id,
        template_version=schema.template_version,
        cases=[_convert_case(c, schema) for c in schema.fixtures],
        created_at=schema.created_at,
    )


def load_fixture_pack_file(path: Union[str, Path]) -> FixturePack:
    """Read and load a fixture pack from YAML or JSON."""
    try:
        data = read_pack_file(path)
    except PackLoadError as e:
        raise FixturePackError(e.message, details=e.details) from e
    return load_fixture_pack(data)
