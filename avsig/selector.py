"""Choose the items and functions that contribute bytes to a signature."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Tuple

from .errors import InsufficientData, InvalidPolicy
from .policy import FunctionFilterMode, GenerationPolicy, ItemSelection
from .regions import ItemRegions, MatchSnapshot


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Selection:
    """Items chosen for a run together with the region columns to skip.

    ``excluded`` holds indices into the aligned region lists.  The indices are
    derived from the first item's function addresses and apply to every item.
    """

    items: Tuple[ItemRegions, ...]
    excluded: FrozenSet[int] = frozenset()

    @property
    def item_ids(self) -> Tuple[str, ...]:
        return tuple(entry.item_id for entry in self.items)

    @property
    def reference(self) -> ItemRegions:
        return self.items[0]


class ItemSelector:
    """Resolve a policy's item list against a matcher snapshot."""

    def __init__(self, snapshot: MatchSnapshot) -> None:
        self.snapshot = snapshot

    def select(self, policy: GenerationPolicy) -> Selection:
        item_ids = self.select_item_ids(policy)
        items = []
        for item_id in item_ids:
            regions = self.snapshot.regions_for(item_id)
            if regions is None:
                raise InsufficientData("matcher produced no regions for item", context=item_id)
            items.append(regions)
        excluded = self.apply_function_filter(policy, items[0])
        logger.debug(
            "selected %d item(s) %s, %d region(s) filtered from %s",
            len(items),
            ", ".join(item_ids),
            len(excluded),
            item_ids[0],
        )
        return Selection(tuple(items), excluded)

    def select_item_ids(self, policy: GenerationPolicy) -> Tuple[str, ...]:
        """Return the listed items followed by qualifying similar items.

        In ``ITEMS_SIMILAR`` mode every candidate whose score against any
        listed item reaches ``items_min_similarity`` is appended.  Candidates
        are ordered by their best score; ties keep the order of the listed item
        they were found through, then the matcher's own ordering.
        """

        listed: List[str] = []
        for item_id in policy.item_ids:
            if item_id not in listed:
                listed.append(item_id)
        if not listed:
            raise InvalidPolicy("at least one source item is required", context="item_ids")
        if policy.item_selection == ItemSelection.ITEMS_EXACT:
            return tuple(listed)

        threshold = policy.items_min_similarity
        best: Dict[str, Tuple[float, int, int]] = {}
        for origin, item_id in enumerate(listed):
            for position, (candidate, score) in enumerate(self.snapshot.similar_to(item_id)):
                if candidate in listed or score < threshold:
                    continue
                key = (-score, origin, position)
                current = best.get(candidate)
                if current is None or key < current:
                    best[candidate] = key
        similar = sorted(best, key=lambda candidate: best[candidate])
        if similar:
            logger.debug("similarity >= %s added %s", threshold, ", ".join(similar))
        return tuple(listed + similar)

    @staticmethod
    def apply_function_filter(policy: GenerationPolicy, reference: ItemRegions) -> FrozenSet[int]:
        """Return region indices of ``reference`` excluded by the function filter."""

        mode = policy.function_filter
        if mode == FunctionFilterMode.FILTER_NONE:
            return frozenset()
        addresses = set(policy.filtered_function_addresses)
        if not addresses:
            raise InvalidPolicy(
                f"{FunctionFilterMode(mode).name} requires at least one function address",
                context="filtered_function_addresses",
            )
        excluded = set()
        for index, region in enumerate(reference.regions):
            listed = region.function_address in addresses
            if mode == FunctionFilterMode.FILTER_BLACKLIST and listed:
                excluded.add(index)
            elif mode == FunctionFilterMode.FILTER_WHITELIST and not listed:
                excluded.add(index)
        return frozenset(excluded)


def select_items(snapshot: MatchSnapshot, policy: GenerationPolicy) -> Selection:
    return ItemSelector(snapshot).select(policy)

