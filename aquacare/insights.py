from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Sequence

from .catalog import BEHAVIOR_MATRIX, SpeciesCatalog
from .models import (
    AquariumInsights,
    BioLoadSummary,
    CompatibilityReport,
    CompatibilityStatus,
    CompatibilityWarning,
    Species,
    StatusLevel,
    StockEntry,
)

logger = logging.getLogger(__name__)

ELEVATED_THRESHOLD = 60
CRITICAL_THRESHOLD = 100


def _round_half_up(value: float, step: str = "1") -> Decimal:
    return Decimal(str(value)).quantize(Decimal(step), rounding=ROUND_HALF_UP)


def classify_bio_load(percentage: int) -> StatusLevel:
    if percentage > CRITICAL_THRESHOLD:
        return StatusLevel.CRITICAL
    if percentage > ELEVATED_THRESHOLD:
        return StatusLevel.ELEVATED
    return StatusLevel.COMFORT


def summarize_bio_load(volume_liters: float, stock: Sequence[StockEntry], catalog: SpeciesCatalog) -> BioLoadSummary:
    """Compare the volume the stocked fish need against the tank volume.

    Entries whose species is missing from the catalog add nothing. A zero
    volume yields 0% instead of failing.
    """
    required = 0.0
    for record in stock:
        species = catalog.lookup(record.species_id)
        if species is None:
            logger.debug("Skipping stock %s: species %s not in catalog", record.id, record.species_id)
            continue
        required += record.quantity * species.recommended_volume_per_fish

    if volume_liters == 0:
        percentage = 0
    else:
        percentage = int(_round_half_up(required / volume_liters * 100))

    return BioLoadSummary(
        required_volume_liters=float(_round_half_up(required, "0.1")),
        percentage=percentage,
        status=classify_bio_load(percentage),
    )


def _conflict_message(actor: Species, subject: Species, declared_by_first: bool) -> str:
    if declared_by_first:
        return f"{actor.common_name} and {subject.common_name} often clash because of incompatible behaviour."
    return f"{actor.common_name} and {subject.common_name} have a pronounced conflict of interests."


def _caution_message(actor: Species, subject: Species) -> str:
    return (
        f"{actor.common_name} and {subject.common_name} need watching: "
        "skirmishes are likely when space or cover runs short."
    )


def evaluate_compatibility(stock: Sequence[StockEntry], catalog: SpeciesCatalog) -> CompatibilityReport:
    warnings: List[CompatibilityWarning] = []
    for i in range(len(stock)):
        for j in range(i + 1, len(stock)):
            species_a = catalog.lookup(stock[i].species_id)
            species_b = catalog.lookup(stock[j].species_id)
            if species_a is None or species_b is None:
                continue
            profile_a = BEHAVIOR_MATRIX[species_a.behavior]
            profile_b = BEHAVIOR_MATRIX[species_b.behavior]

            # The table is not symmetric, so both sides are consulted.
            if species_b.behavior in profile_a.incompatible_with:
                message = _conflict_message(species_a, species_b, declared_by_first=True)
            elif species_a.behavior in profile_b.incompatible_with:
                message = _conflict_message(species_b, species_a, declared_by_first=False)
            elif species_b.behavior in profile_a.caution_with:
                message = _caution_message(species_a, species_b)
            elif species_a.behavior in profile_b.caution_with:
                message = _caution_message(species_b, species_a)
            else:
                continue
            warnings.append(
                CompatibilityWarning(species_a_id=species_a.id, species_b_id=species_b.id, message=message)
            )

    status = CompatibilityStatus.WARN if warnings else CompatibilityStatus.OK
    return CompatibilityReport(status=status, warnings=warnings)


def build_insights(volume_liters: float, stock: Sequence[StockEntry], catalog: SpeciesCatalog) -> AquariumInsights:
    return AquariumInsights(
        bio_load=summarize_bio_load(volume_liters, stock, catalog),
        compatibility=evaluate_compatibility(stock, catalog),
    )
