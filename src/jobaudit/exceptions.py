"""
jobaudit Exception Hierarchy

Domain-specific exceptions for job-sheet template validation.
All exceptions include error codes for tracking and logging.

Public pipeline entry points (selection, evaluation, fixture runs) return
typed failure results instead of raising. These exceptions cover operator
and programmer errors: unreadable files, malformed packs, bad settings.

Exception codes follow the pattern: JA_<CATEGORY>_<SPECIFIC>
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class JobAuditError(Exception):
    """
    Base exception for all jobaudit errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (JA_*)
        details: Additional context about the error
        template_id: Associated template ID if applicable
    """
    message: str
    code: str = "JA_INTERNAL_ERROR"
    details: dict[str, Any] = field(default_factory=dict)
    template_id: Optional[str] = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        parts = [f"[{self.code}] {self.message}"]
        if self.template_id:
            parts.append(f"(template: {self.template_id})")
        return " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Serialize exception for logging/CLI output."""
        result: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        if self.template_id:
            result["template_id"] = self.template_id
        return result


# =============================================================================
# Pack Errors
# =============================================================================

@dataclass
class PackLoadError(JobAuditError):
    """Failed to read or parse a spec pack or fixture pack file."""
    code: str = "JA_PACK_LOAD_ERROR"


@dataclass
class PackValidationError(JobAuditError):
    """Spec pack schema validation failed."""
    code: str = "JA_PACK_VALIDATION_ERROR"


@dataclass
class FixturePackError(JobAuditError):
    """Fixture pack is malformed or references non-canonical codes."""
    code: str = "JA_FIXTURE_PACK_ERROR"


# =============================================================================
# Registry Errors
# =============================================================================

@dataclass
class TemplateNotFoundError(JobAuditError):
    """Requested template is not registered."""
    code: str = "JA_TEMPLATE_NOT_FOUND"


# =============================================================================
# Semantics Errors
# =============================================================================

@dataclass
class InvalidSeverityTierError(JobAuditError):
    """A severity tier outside S0-S3 reached a canonical ingestion path."""
    code: str = "JA_INVALID_SEVERITY_TIER"


# =============================================================================
# Cache Errors
# =============================================================================

@dataclass
class CacheError(JobAuditError):
    """Cache entry could not be stored."""
    code: str = "JA_CACHE_ERROR"


# =============================================================================
# Configuration Errors
# =============================================================================

@dataclass
class ConfigurationError(JobAuditError):
    """Settings could not be parsed from environment or file."""
    code: str = "JA_CONFIGURATION_ERROR"
