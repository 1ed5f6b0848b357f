"""KeySession - orchestrates fetching, tree building and navigation for one key.

A session owns the active key identity, the pruned tree built for it and
every list derived from that tree. Changing the identity throws all of it
away. Per-node derivations are memoized by the lead id they were computed
for, so repeated reads while navigating are free.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, TypeVar

from idkey.data import build_fetcher
from idkey.data.fetcher import KeyFetcher
from idkey.models import FullKey, LeadRecord, SessionState, SpeciesEntry, SpeciesWithRecords
from idkey.settings import IdKeySettings, settings
from idkey.species import species_names, unique_species_with_images, unique_species_with_records
from idkey.tree import Node, Tree, build_tree, find, flatten, flatten_renumbered, prune_tree
from idkey.utils import ConfigurationError, MalformedTreeError, TransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_STEPS = "steps"
_SPECIES_IMAGES = "species_images"
_SPECIES_RECORDS = "species_records"


class KeySession:
    """State holder for navigating one identification key.

    Lifecycle: construct, :meth:`load` (or :meth:`set_active_key` followed by
    :meth:`fetch_data`), navigate, then :meth:`reset` or :meth:`dispose`.

    Navigation failures never raise. A lead that is missing, or whose subtree
    was pruned away, sets ``is_current_node_valid`` to False until the next
    successful lookup.
    """

    def __init__(self, fetcher: KeyFetcher) -> None:
        self.fetcher = fetcher
        self.key_id: str | None = None
        self._generation = 0
        self._clear_derived()

    @classmethod
    def from_settings(cls, config: IdKeySettings | None = None) -> KeySession:
        return cls(build_fetcher(config or settings))

    def _clear_derived(self) -> None:
        self.state = SessionState.idle
        self.error: str | None = None
        self.full_key: FullKey | None = None
        self.records: frozenset[int] = frozenset()
        self.tree: Tree | None = None
        self.steps: list[LeadRecord] = []
        self.root_lead_id: int | None = None
        self.current_lead_id: int | None = None
        self.is_current_node_valid = True
        self._species_list: list[SpeciesEntry] | None = None
        self._memo: dict[str, tuple[int, list]] = {}

    # -- Key identity ---------------------------------------------------------

    @property
    def is_loading(self) -> bool:
        return self.state == SessionState.loading

    @property
    def is_full_key(self) -> bool:
        return self.key_id is not None and self.fetcher.is_full_key(self.key_id)

    @property
    def is_empty(self) -> bool:
        """True when the installed key has no leads left after pruning."""
        return self.tree is not None and self.tree.is_empty

    def set_active_key(self, key_id: str) -> None:
        """Install ``key_id``; a different identity discards all derived state first."""
        if key_id != self.key_id:
            self.reset_derived()
        self.key_id = key_id

    def reset_derived(self) -> None:
        """Drop the tree and every derivation but keep the key identity.

        Any pipeline still in flight will not commit its results.
        """
        self._generation += 1
        self._clear_derived()

    def reset(self) -> None:
        """Full reset, including the key identity."""
        self.reset_derived()
        self.key_id = None

    async def dispose(self) -> None:
        self.reset()
        await self.fetcher.aclose()

    async def __aenter__(self) -> KeySession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.dispose()

    # -- Fetch pipeline -------------------------------------------------------

    async def load(self, key_id: str, force_refresh: bool = False) -> None:
        self.set_active_key(key_id)
        await self.fetch_data(force_refresh=force_refresh)

    async def fetch_data(self, force_refresh: bool = False) -> None:
        """Fetch, build, prune and install the tree for the active key.

        Errors end up in ``error`` with state ``failed``; whatever was
        installed before stays in place.
        """
        if not self.key_id:
            self.error = str(ConfigurationError("Key ID is not set"))
            logger.warning(self.error)
            return

        generation, key_id = self._generation, self.key_id
        self.state = SessionState.loading
        self.error = None

        try:
            dataset, records = await self._fetch_both(key_id, force_refresh)
            tree = build_tree(dataset.key_data)
            prune_tree(tree, records, full_key=self.fetcher.is_full_key(key_id))
        except (TransportError, MalformedTreeError) as exc:
            if self._is_current(generation, key_id):
                logger.error("Loading key '%s' failed: %s", key_id, exc)
                self._fail(exc)
            return
        except BaseException as exc:
            # Unexpected errors and cancellation propagate, but never leave
            # the session in the loading state.
            if self._is_current(generation, key_id):
                logger.exception("Loading key '%s' aborted", key_id)
                self._fail(exc)
            raise

        if not self._is_current(generation, key_id):
            logger.info("Discarding superseded result for key '%s'", key_id)
            return
        self._install(dataset, records, tree)

    async def _fetch_both(self, key_id: str, force_refresh: bool) -> tuple[FullKey, frozenset[int]]:
        """Run the dataset and record fetches concurrently.

        If either fails the other is cancelled and awaited before the error
        propagates.
        """
        tasks = [
            asyncio.ensure_future(self.fetcher.fetch_dataset(force_refresh=force_refresh)),
            asyncio.ensure_future(self.fetcher.fetch_record_filter(key_id)),
        ]
        try:
            dataset, records = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return dataset, records

    def _fail(self, exc: BaseException) -> None:
        self.error = str(exc) or type(exc).__name__
        self.state = SessionState.failed

    def _is_current(self, generation: int, key_id: str) -> bool:
        return generation == self._generation and key_id == self.key_id

    def _install(self, dataset: FullKey, records: frozenset[int], tree: Tree) -> None:
        self.full_key = dataset
        self.records = records
        self.tree = tree
        # Root-level step list omits the root lead itself
        self.steps = flatten(tree)[1:]
        self._species_list = None
        self._memo = {}
        self.is_current_node_valid = True
        self.root_lead_id = tree.root.lead_id if tree.root is not None else None
        self.current_lead_id = self.root_lead_id
        self.state = SessionState.ready
        logger.info(
            "Key '%s' ready: %d leads, %d steps", self.key_id, len(tree), len(self.steps)
        )

    # -- Navigation -----------------------------------------------------------

    def set_current_node(self, lead_id: int) -> None:
        self.current_lead_id = lead_id

    def reset_current_node_to_root(self) -> None:
        self.current_lead_id = self.root_lead_id

    def find_node(self, lead_id: int) -> Node | None:
        """Resolve a lead id in the installed tree."""
        if self.tree is None:
            return None
        node = find(self.tree, lead_id)
        self.is_current_node_valid = node is not None
        return node

    # -- Derived lists --------------------------------------------------------

    def _memoized(self, name: str, lead_id: int, compute: Callable[[Tree, int], list[T] | None]) -> list[T]:
        cached = self._memo.get(name)
        if cached is not None and cached[0] == lead_id:
            self.is_current_node_valid = True
            return cached[1]
        if self.tree is None:
            return []
        result = compute(self.tree, lead_id)
        if result is None:
            self.is_current_node_valid = False
            return []
        self.is_current_node_valid = True
        self._memo[name] = (lead_id, result)
        return result

    def steps_for_node(self, lead_id: int) -> list[LeadRecord]:
        """Descendants of ``lead_id`` renumbered so that ``lead_id`` becomes 1."""
        def compute(tree: Tree, node_id: int) -> list[LeadRecord] | None:
            listing = flatten_renumbered(tree, node_id)
            return listing[1:] if listing else None
        return self._memoized(_STEPS, lead_id, compute)

    def species_with_images_for_node(self, lead_id: int) -> list[SpeciesEntry]:
        def compute(tree: Tree, node_id: int) -> list[SpeciesEntry] | None:
            listing = flatten(tree, node_id)
            return unique_species_with_images(listing) if listing else None
        return self._memoized(_SPECIES_IMAGES, lead_id, compute)

    def species_with_records_for_node(self, lead_id: int) -> list[SpeciesWithRecords]:
        def compute(tree: Tree, node_id: int) -> list[SpeciesWithRecords] | None:
            listing = flatten(tree, node_id)
            return unique_species_with_records(listing) if listing else None
        return self._memoized(_SPECIES_RECORDS, lead_id, compute)

    @property
    def current_steps(self) -> list[LeadRecord]:
        if self.current_lead_id is None:
            return []
        return self.steps_for_node(self.current_lead_id)

    @property
    def current_species_with_images(self) -> list[SpeciesEntry]:
        if self.current_lead_id is None:
            return []
        return self.species_with_images_for_node(self.current_lead_id)

    @property
    def current_species_with_records(self) -> list[SpeciesWithRecords]:
        if self.current_lead_id is None:
            return []
        return self.species_with_records_for_node(self.current_lead_id)

    def unique_species_with_images(self) -> list[SpeciesEntry]:
        """Species of the whole installed key, computed once per install."""
        if self._species_list is None:
            self._species_list = unique_species_with_images(self.steps)
        return self._species_list

    def unique_species_with_records(self) -> list[SpeciesWithRecords]:
        return unique_species_with_records(self.steps)

    def species_names(self, lead_id: int | None = None) -> list[str]:
        """Sorted species names of the whole key, or of the subtree at ``lead_id``."""
        if lead_id is None:
            return species_names(self.steps)
        if self.tree is None:
            return []
        return species_names(flatten(self.tree, lead_id))

    @property
    def species_count(self) -> int:
        return len(self.unique_species_with_images())
