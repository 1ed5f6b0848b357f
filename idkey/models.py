"""Pydantic v2 models for the identification key engine."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# parent_id value meaning "no parent" in the remote dataset
NO_PARENT = 0


class SessionState(str, Enum):
    """Lifecycle of a KeySession.

    idle: no dataset requested for the active key yet.
    loading: fetch -> build -> prune pipeline in flight.
    ready: tree and derivations installed.
    failed: last pipeline run recorded an error.
    """
    idle = "idle"
    loading = "loading"
    ready = "ready"
    failed = "failed"


class LeadRecord(BaseModel):
    """One lead of the key as served by the remote dataset.

    Field aliases follow the wire format (``leadId``, ``leadSpecies``...),
    Python code uses the snake_case names.
    """

    model_config = ConfigDict(populate_by_name=True)

    lead_id: int = Field(..., alias="leadId", gt=0)
    parent_id: int | None = Field(default=None, alias="parentId")
    text: str = Field(default="", alias="leadText")
    lead_image: str | None = Field(default=None, alias="leadImage")
    species_image: str | None = Field(default=None, alias="speciesImage")
    species: str | None = Field(default=None, alias="leadSpecies")
    record_id: int = Field(default=0, alias="leadRecordId")

    @property
    def is_root_marker(self) -> bool:
        """True when the record declares itself the root of the key."""
        return self.parent_id is None or self.parent_id in (NO_PARENT, self.lead_id)


class FullKey(BaseModel):
    """Snapshot of the whole flat lead dataset."""

    model_config = ConfigDict(populate_by_name=True)

    key_data: list[LeadRecord] = Field(default_factory=list, alias="keyData")


class SpeciesEntry(BaseModel):
    name: str
    image: str | None = None


class SpeciesWithRecords(BaseModel):
    name: str
    records: list[int] = Field(default_factory=list)


class CacheEntry(BaseModel):
    """Cached dataset together with the time it was fetched."""

    dataset: FullKey
    fetched_at_ms: int = Field(..., ge=0)
