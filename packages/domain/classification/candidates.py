"""
Candidate Set Builder

Renders the catalog as the 'CODE - description' text the model must pick
from. Orders only, never filters: when a priority list is given both the
priority block and the full block are emitted.
"""
from dataclasses import dataclass
from typing import Optional, Sequence

from packages.domain.classification.catalog import CodeCatalog
from packages.domain.classification.errors import EmptyCatalog


@dataclass(frozen=True)
class CandidateBlock:
    """
    Candidate text offered to inference.

    Attributes:
        full: Every catalog entry, catalog order, newline-joined
        priority: Priority entries in priority order (None when no list given)
    """
    full: str
    priority: Optional[str] = None

    @property
    def has_priority(self) -> bool:
        return bool(self.priority)


def build_candidates(
    catalog: CodeCatalog,
    priority_codes: Optional[Sequence[str]] = None,
) -> CandidateBlock:
    """
    Build candidate block(s) from the catalog.

    Codes in priority_codes that are not in the catalog are skipped.
    """
    if catalog is None or len(catalog) == 0:
        raise EmptyCatalog("HS code catalog is empty, nothing to classify against")

    full = "\n".join(entry.formatted for entry in catalog)

    if priority_codes is None:
        return CandidateBlock(full=full)

    priority_lines = []
    for code in priority_codes:
        entry = catalog.get(code)
        if entry is not None:
            priority_lines.append(entry.formatted)

    return CandidateBlock(full=full, priority="\n".join(priority_lines))
