"""
jobaudit: Job-Sheet Template Validation

Decides which versioned template matches a scanned field-service job sheet,
audits whether the engineer documented the job properly, and gates template
activation behind labeled fixture runs.

Key features:
- Template registry with lifecycle, change detection and activation gates
- Fingerprint-based template selection with an explicit safety policy
- Conditional documentation-audit rules (killer and summary questions)
- Fixture matrix runner with per-case and per-pack time budgets
- Deterministic result cache

Usage:
    from jobaudit import TemplateRegistry, TemplateSelector, ConditionalRulesEngine

    registry = TemplateRegistry()
    registry.load_directory("packs")
    result = TemplateSelector(registry).select_template(DocumentContext(extracted_text=text))
"""
from __future__ import annotations

__version__ = "0.1.0"

from .cache import (
    CacheEntry,
    CacheKeyComponents,
    CacheLookupResult,
    CacheStats,
    DeterministicCache,
    build_cache_key_components,
    compute_file_hash,
)
from .config import Settings
from .engine import (
    ConditionalRulesEngine,
    FixtureMatrixRunner,
    TemplateRegistry,
    TemplateSelector,
    check_activation_gate,
    make_rules_engine_validator,
)
from .exceptions import (
    CacheError,
    ConfigurationError,
    FixturePackError,
    InvalidSeverityTierError,
    JobAuditError,
    PackLoadError,
    PackValidationError,
    TemplateNotFoundError,
)
from .logging_config import configure_logging
from .models import (
    AutoSelect,
    DocumentContext,
    DocumentationAuditResult,
    ExtractedField,
    FixtureCase,
    FixturePack,
    HardStop,
    ReasonCode,
    ReviewQueue,
    SelectionResult,
    Template,
)

__all__ = [
    "__version__",
    # Cache
    "CacheEntry",
    "CacheKeyComponents",
    "CacheLookupResult",
    "CacheStats",
    "DeterministicCache",
    "build_cache_key_components",
    "compute_file_hash",
    # Config & logging
    "Settings",
    "configure_logging",
    # Engine
    "ConditionalRulesEngine",
    "FixtureMatrixRunner",
    "TemplateRegistry",
    "TemplateSelector",
    "check_activation_gate",
    "make_rules_engine_validator",
    # Exceptions
    "CacheError",
    "ConfigurationError",
    "FixturePackError",
    "InvalidSeverityTierError",
    "JobAuditError",
    "PackLoadError",
    "PackValidationError",
    "TemplateNotFoundError",
    # Models
    "AutoSelect",
    "DocumentContext",
    "DocumentationAuditResult",
    "ExtractedField",
    "FixtureCase",
    "FixturePack",
    "HardStop",
    "ReasonCode",
    "ReviewQueue",
    "SelectionResult",
    "Template",
]
