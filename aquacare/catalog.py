from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import FrozenSet, Iterable, Mapping, Optional

from .models import BehaviorCategory, Species


@dataclass(slots=True, frozen=True)
class BehaviorProfile:
    incompatible_with: FrozenSet[BehaviorCategory]
    caution_with: FrozenSet[BehaviorCategory]
    description: str


BEHAVIOR_MATRIX: Mapping[BehaviorCategory, BehaviorProfile] = MappingProxyType(
    {
        BehaviorCategory.PEACEFUL: BehaviorProfile(
            incompatible_with=frozenset({BehaviorCategory.AGGRESSIVE, BehaviorCategory.PREDATOR}),
            caution_with=frozenset({BehaviorCategory.SEMI_AGGRESSIVE}),
            description="Peaceful fish live well with similarly sized species and do not tolerate aggressive tankmates.",
        ),
        BehaviorCategory.SEMI_AGGRESSIVE: BehaviorProfile(
            incompatible_with=frozenset({BehaviorCategory.PREDATOR}),
            caution_with=frozenset({BehaviorCategory.PEACEFUL, BehaviorCategory.SCHOOLING}),
            description="Semi-aggressive species need room and cover to keep territorial disputes down.",
        ),
        BehaviorCategory.AGGRESSIVE: BehaviorProfile(
            incompatible_with=frozenset(
                {BehaviorCategory.PEACEFUL, BehaviorCategory.SCHOOLING, BehaviorCategory.BOTTOM_DWELLER}
            ),
            caution_with=frozenset({BehaviorCategory.SEMI_AGGRESSIVE}),
            description="Aggressive species dominate and can injure calmer fish, especially in cramped tanks.",
        ),
        BehaviorCategory.PREDATOR: BehaviorProfile(
            incompatible_with=frozenset(
                {BehaviorCategory.PEACEFUL, BehaviorCategory.SCHOOLING, BehaviorCategory.BOTTOM_DWELLER}
            ),
            caution_with=frozenset({BehaviorCategory.SEMI_AGGRESSIVE}),
            description="Predators treat small fish as food and need space and a steady diet.",
        ),
        BehaviorCategory.BOTTOM_DWELLER: BehaviorProfile(
            incompatible_with=frozenset(),
            caution_with=frozenset({BehaviorCategory.AGGRESSIVE, BehaviorCategory.PREDATOR}),
            description="Bottom dwellers get along with most species when they can reach food and shelter.",
        ),
        BehaviorCategory.SCHOOLING: BehaviorProfile(
            incompatible_with=frozenset({BehaviorCategory.AGGRESSIVE, BehaviorCategory.PREDATOR}),
            caution_with=frozenset({BehaviorCategory.SEMI_AGGRESSIVE}),
            description="Schooling fish feel safe in a group and need calm neighbours without strong territoriality.",
        ),
    }
)


FISH_SPECIES: tuple[Species, ...] = (
    Species(
        id="neon_tetra",
        common_name="Neon tetra",
        scientific_name="Paracheirodon innesi",
        recommended_volume_per_fish=4,
        behavior=BehaviorCategory.SCHOOLING,
        bio_load_factor=1,
        is_schooling=True,
        notes="Peaceful schooling fish, prefers soft and slightly acidic water.",
    ),
    Species(
        id="guppy",
        common_name="Guppy",
        scientific_name="Poecilia reticulata",
        recommended_volume_per_fish=5,
        behavior=BehaviorCategory.PEACEFUL,
        bio_load_factor=1,
        is_schooling=True,
        notes="Hardy, but breeds quickly.",
    ),
    Species(
        id="angelfish",
        common_name="Angelfish",
        scientific_name="Pterophyllum scalare",
        recommended_volume_per_fish=20,
        behavior=BehaviorCategory.SEMI_AGGRESSIVE,
        bio_load_factor=2,
        is_schooling=False,
        notes="Turns territorial when short on space, especially towards small schooling fish.",
    ),
    Species(
        id="betta",
        common_name="Betta",
        scientific_name="Betta splendens",
        recommended_volume_per_fish=15,
        behavior=BehaviorCategory.AGGRESSIVE,
        bio_load_factor=1.5,
        is_schooling=False,
        notes="Males fight their own kind and are best kept alone.",
    ),
    Species(
        id="corydoras",
        common_name="Corydoras",
        scientific_name="Corydoras paleatus",
        recommended_volume_per_fish=8,
        behavior=BehaviorCategory.BOTTOM_DWELLER,
        bio_load_factor=1,
        is_schooling=True,
        notes="Bottom cleaners, keep in groups of six or more.",
    ),
    Species(
        id="discus",
        common_name="Discus",
        scientific_name="Symphysodon aequifasciatus",
        recommended_volume_per_fish=40,
        behavior=BehaviorCategory.PEACEFUL,
        bio_load_factor=3,
        is_schooling=True,
        notes="Demanding about water quality, likes warm soft water and a roomy tank.",
    ),
    Species(
        id="oscar",
        common_name="Oscar",
        scientific_name="Astronotus ocellatus",
        recommended_volume_per_fish=100,
        behavior=BehaviorCategory.PREDATOR,
        bio_load_factor=4,
        is_schooling=False,
        notes="Large predator that eats small fish. Needs strong filtration and a big tank.",
    ),
    Species(
        id="goldfish",
        common_name="Goldfish",
        scientific_name="Carassius auratus",
        recommended_volume_per_fish=40,
        behavior=BehaviorCategory.PEACEFUL,
        bio_load_factor=3,
        is_schooling=False,
        notes="Heavy load on the biofilter, prefers cool water.",
    ),
    Species(
        id="molly",
        common_name="Molly",
        scientific_name="Poecilia sphenops",
        recommended_volume_per_fish=10,
        behavior=BehaviorCategory.PEACEFUL,
        bio_load_factor=1.2,
        is_schooling=True,
        notes="Needs stable parameters, some varieties benefit from added salt.",
    ),
    Species(
        id="pleco",
        common_name="Bristlenose pleco",
        scientific_name="Ancistrus dolichopterus",
        recommended_volume_per_fish=20,
        behavior=BehaviorCategory.BOTTOM_DWELLER,
        bio_load_factor=1.8,
        is_schooling=False,
        notes="Keeps algae in check but produces a lot of waste.",
    ),
)


class SpeciesCatalog:
    """Read-only lookup over the fish species reference data."""

    def __init__(self, species: Optional[Iterable[Species]] = None) -> None:
        entries = FISH_SPECIES if species is None else tuple(species)
        self._species: Mapping[str, Species] = MappingProxyType({entry.id: entry for entry in entries})

    def lookup(self, species_id: str) -> Optional[Species]:
        return self._species.get(species_id)

    def __contains__(self, species_id: object) -> bool:
        return species_id in self._species

    def __len__(self) -> int:
        return len(self._species)
