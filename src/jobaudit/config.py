"""
jobaudit Settings

Runtime configuration for the validation pipeline.

Settings come from three layers, later layers winning:
1. Dataclass defaults
2. An optional YAML file (Settings.from_yaml)
3. JOBAUDIT_* environment variables (Settings.from_env)

Usage:
    settings = Settings.from_env()
    registry = TemplateRegistry(settings=settings)
    engine = ConditionalRulesEngine(registry, settings=settings)
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml

from .exceptions import ConfigurationError


ENV_PREFIX = "JOBAUDIT_"

DEFAULT_ENGINE_VERSIONS = {
    "ocr": "1.0.0",
    "analyzer": "1.0.0",
    "extraction": "1.0.0",
}


@dataclass(frozen=True)
class Settings:
    """Immutable pipeline settings shared by the registry, selector, engine and runner."""

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # Registry
    specs_dir: Optional[str] = None
    require_fixture_gate: bool = False
    activation_min_selection_tokens: int = 0
    activation_require_critical_rois: bool = False
    activation_allowed_missing_rois: tuple[str, ...] = ()

    # Selection
    ambiguity_gap: int = 10

    # Rules engine
    low_confidence_threshold: float = 0.70
    min_comment_length: int = 10
    comments_field: str = "engineerComments"
    follow_up_field: str = "returnVisitNeeded"
    signature_fields: tuple[str, ...] = ("technicianSignature", "engineerSignature")

    # Fixture runner
    fixture_case_budget_ms: int = 30_000
    fixture_pack_budget_ms: int = 120_000
    fixture_max_concurrency: int = 1

    # Cache
    cache_max_entries: int = 1000
    cache_max_size_bytes: int = 500 * 1024 * 1024
    cache_ttl_seconds: int = 24 * 60 * 60

    engine_versions: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_ENGINE_VERSIONS)
    )

    def __post_init__(self) -> None:
        if not 0.0 <= self.low_confidence_threshold <= 1.0:
            raise ConfigurationError(
                "low_confidence_threshold must be between 0 and 1",
                details={"value": self.low_confidence_threshold},
            )
        for name in (
            "fixture_case_budget_ms",
            "fixture_pack_budget_ms",
            "fixture_max_concurrency",
            "cache_max_entries",
            "cache_max_size_bytes",
            "cache_ttl_seconds",
        ):
            if getattr(self, name) <= 0:
                raise ConfigurationError(
                    f"{name} must be positive",
                    details={"value": getattr(self, name)},
                )
        for name in ("ambiguity_gap", "min_comment_length", "activation_min_selection_tokens"):
            if getattr(self, name) < 0:
                raise ConfigurationError(
                    f"{name} must not be negative",
                    details={"value": getattr(self, name)},
                )

    # -------------------------------------------------------------------------
    # Constructors
    # -------------------------------------------------------------------------

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], base: Optional["Settings"] = None) -> "Settings":
        """Overlay known keys from a mapping onto base settings."""
        base = base or cls()
        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(data) - set(known))
        if unknown:
            raise ConfigurationError(
                "Unknown settings keys",
                details={"keys": unknown},
            )
        updates: dict[str, Any] = {}
        for key, raw in data.items():
            updates[key] = _coerce(key, raw, getattr(base, key))
        return replace(base, **updates)

    @classmethod
    def from_yaml(cls, path: Union[str, Path], base: Optional["Settings"] = None) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(
                f"Cannot read settings file: {path}",
                details={"error": str(e)},
            ) from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Settings file must contain a mapping: {path}")
        return cls.from_mapping(data, base=base)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        base: Optional["Settings"] = None,
    ) -> "Settings":
        """
        Read JOBAUDIT_* environment variables.

        JOBAUDIT_CONFIG_FILE, when set, is loaded first and the remaining
        variables override it.
        """
        env = os.environ if environ is None else environ
        settings = base or cls()
        config_file = env.get(f"{ENV_PREFIX}CONFIG_FILE")
        if config_file:
            settings = cls.from_yaml(config_file, base=settings)

        overrides: dict[str, Any] = {}
        for f in fields(cls):
            raw = env.get(f"{ENV_PREFIX}{f.name.upper()}")
            if raw is not None:
                overrides[f.name] = raw
        if overrides:
            settings = cls.from_mapping(overrides, base=settings)
        return settings


def _coerce(key: str, raw: Any, current: Any) -> Any:
    """Coerce a raw env/YAML value to the type of the current setting."""
    try:
        if isinstance(current, bool):
            if isinstance(raw, bool):
                return raw
            return str(raw).strip().lower() in ("1", "true", "yes", "on")
        if isinstance(current, int):
            return int(raw)
        if isinstance(current, float):
            return float(raw)
        if isinstance(current, tuple):
            if isinstance(raw, str):
                return tuple(part.strip() for part in raw.split(",") if part.strip())
            return tuple(str(part) for part in raw)
        if isinstance(current, dict):
            if isinstance(raw, str):
                pairs = [p.split("=", 1) for p in raw.split(",") if p.strip()]
                return {k.strip(): v.strip() for k, v in pairs}
            return {str(k): str(v) for k, v in dict(raw).items()}
        if raw is None:
            return None
        return str(raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"Invalid value for setting '{key}'",
            details={"value": str(raw), "error": str(e)},
        ) from e
