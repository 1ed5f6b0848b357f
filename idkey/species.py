"""Species lists derived from a step list.

Pure functions: the same steps always give the same result. Memoization is
done by the session that owns the step lists.
"""

from __future__ import annotations

from typing import Iterable

from idkey.models import LeadRecord, SpeciesEntry, SpeciesWithRecords


def name_sort_key(name: str) -> tuple[str, str]:
    """Case-insensitive order, lowercase first when names differ only by case."""
    return (name.casefold(), name.swapcase())


def unique_species_with_images(steps: Iterable[LeadRecord]) -> list[SpeciesEntry]:
    """One entry per species name, sorted by name.

    When a name appears more than once the image of the last occurrence
    in ``steps`` is kept.
    """
    by_name: dict[str, SpeciesEntry] = {}
    for step in steps:
        if step.species is not None:
            by_name[step.species] = SpeciesEntry(name=step.species, image=step.species_image)
    return sorted(by_name.values(), key=lambda entry: name_sort_key(entry.name))


def unique_species_with_records(steps: Iterable[LeadRecord]) -> list[SpeciesWithRecords]:
    """Group record ids by species name, first-seen order within each group."""
    by_name: dict[str, SpeciesWithRecords] = {}
    for step in steps:
        if step.species is None:
            continue
        entry = by_name.setdefault(step.species, SpeciesWithRecords(name=step.species))
        entry.records.append(step.record_id)
    return sorted(by_name.values(), key=lambda entry: name_sort_key(entry.name))


def species_names(steps: Iterable[LeadRecord]) -> list[str]:
    return sorted({s.species for s in steps if s.species is not None}, key=name_sort_key)
