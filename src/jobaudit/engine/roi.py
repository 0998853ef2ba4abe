"""
jobaudit ROI Geometry

Region-of-interest validation and point lookup for template ROI hints.

Regions on a page must not overlap (positive-area intersection), so a
point lookup never has to break ties. Regions that only share an edge are
allowed; a point on the shared edge resolves to the region declared first.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..models import RoiDefinition, RoiRegion


# Region names the extraction stage knows how to use
STANDARD_ROI_TYPES = (
    "header",
    "jobReference",
    "assetId",
    "date",
    "expiryDate",
    "tickboxBlock",
    "signatureBlock",
    "customerSignature",
    "engineerSignature",
    "workDescription",
    "partsUsed",
)

# Allowance for floating point error on normalized page bounds
_PAGE_EPSILON = 0.001


@dataclass(frozen=True)
class RoiValidation:
    valid: bool
    errors: tuple[str, ...]
    warnings: tuple[str, ...]


def point_in_region(region: RoiRegion, x: float, y: float) -> bool:
    """Inclusive point-in-rectangle test."""
    return (
        region.x <= x <= region.x + region.width
        and region.y <= y <= region.y + region.height
    )


def regions_overlap(a: RoiRegion, b: RoiRegion) -> bool:
    """True when the rectangles share a positive area."""
    return (
        a.x < b.x + b.width
        and b.x < a.x + a.width
        and a.y < b.y + b.height
        and b.y < a.y + a.height
    )


def find_region(definition: Optional[RoiDefinition], page_index: int,
                x: float, y: float) -> Optional[RoiRegion]:
    """Region containing the point on the given 0-based page, if any."""
    if definition is None or definition.page_index_0_based != page_index:
        return None
    for region in definition.regions:
        if point_in_region(region, x, y):
            return region
    return None


def validate_roi(definition: RoiDefinition) -> RoiValidation:
    """
    Validate an ROI definition.

    Errors: empty names, negative origin, non-positive size, duplicate
    names, overlapping regions.
    Warnings: non-standard names, regions running off a normalized page.
    """
    errors: list[str] = []
    warnings: list[str] = []

    if definition.page_index_0_based < 0:
        errors.append("roiOptional.pageIndex0Based must be >= 0")

    for i, region in enumerate(definition.regions):
        label = f"roiOptional.regions[{i}]"
        if not region.name or not region.name.strip():
            errors.append(f"{label}: name is required")
        if region.x < 0 or region.y < 0:
            errors.append(f"{label}: x and y must be >= 0")
        if region.width <= 0 or region.height <= 0:
            errors.append(f"{label}: width and height must be > 0")

        normalized = all(v <= 1 for v in (region.x, region.y, region.width, region.height))
        if normalized:
            if region.x + region.width > 1 + _PAGE_EPSILON:
                warnings.append(f"{label}: x + width exceeds page boundary")
            if region.y + region.height > 1 + _PAGE_EPSILON:
                warnings.append(f"{label}: y + height exceeds page boundary")

        if region.name and region.name not in STANDARD_ROI_TYPES:
            warnings.append(f"{label}: '{region.name}' is not a standard ROI type")

    names = [r.name for r in definition.regions]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        errors.append(f"Duplicate ROI region names: {', '.join(duplicates)}")

    regions = definition.regions
    for i in range(len(regions)):
        for j in range(i + 1, len(regions)):
            if regions_overlap(regions[i], regions[j]):
                errors.append(
                    f"ROI regions '{regions[i].name}' and '{regions[j].name}' overlap"
                )

    return RoiValidation(valid=not errors, errors=tuple(errors), warnings=tuple(warnings))
