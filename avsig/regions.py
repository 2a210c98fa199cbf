"""Byte regions reported by the upstream binary matcher.

The matcher compares the requested binaries and hands back, for every item, an
ordered list of :class:`ByteRegion` entries.  Regions are aligned: region ``i``
of every item describes the same location in the matched code.  A *common*
region holds bytes that are identical across the compared binaries, a
*variable* one covers bytes that differ, typically relocated addresses or
immediates, together with the observed length range.

This module only models that hand-off.  The matcher itself is an external
collaborator and the structures are treated as a read-only snapshot for the
duration of a generation run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from .pattern import UNBOUNDED


class RegionKind(Enum):
    COMMON = "common"
    VARIABLE = "variable"


@dataclass(frozen=True)
class ByteRegion:
    """One annotated region of an item's matched bytes."""

    kind: RegionKind
    data: bytes = b""
    function_address: Optional[int] = None
    weight: int = 0
    disassembly: Tuple[str, ...] = tuple()
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    stable_nibbles: Optional[FrozenSet[int]] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", bytes(self.data))
        object.__setattr__(self, "disassembly", tuple(self.disassembly))
        if self.stable_nibbles is not None:
            object.__setattr__(self, "stable_nibbles", frozenset(self.stable_nibbles))
        low, high = self.length_range()
        if low < 0 or (high != UNBOUNDED and high < low):
            raise ValueError(f"invalid region length range [{low}, {high}]")

    @property
    def is_common(self) -> bool:
        return self.kind is RegionKind.COMMON

    def length_range(self) -> Tuple[int, int]:
        """Return ``(min, max)`` observed for this region, ``max`` may be ``-1``."""

        if self.kind is RegionKind.COMMON:
            return len(self.data), len(self.data)
        low = self.min_length if self.min_length is not None else len(self.data)
        high = self.max_length if self.max_length is not None else max(low, len(self.data))
        return low, high

    @property
    def fixed_length(self) -> Optional[int]:
        """Return the exact length when the range collapses to one value."""

        low, high = self.length_range()
        if high == low:
            return low
        return None

    @classmethod
    def common(cls, data: bytes, **kwargs: Any) -> "ByteRegion":
        return cls(RegionKind.COMMON, data, **kwargs)

    @classmethod
    def variable(cls, data: bytes = b"", **kwargs: Any) -> "ByteRegion":
        return cls(RegionKind.VARIABLE, data, **kwargs)

    @classmethod
    def from_dict(cls, entry: Mapping[str, Any]) -> "ByteRegion":
        kind = RegionKind(entry.get("kind", "common"))
        data = entry.get("data", b"")
        if isinstance(data, str):
            data = bytes.fromhex(data)
        stable = entry.get("stable_nibbles")
        return cls(
            kind,
            data,
            function_address=entry.get("function_address"),
            weight=int(entry.get("weight", 0)),
            disassembly=tuple(entry.get("disassembly", ())),
            min_length=entry.get("min_length"),
            max_length=entry.get("max_length"),
            stable_nibbles=frozenset(stable) if stable is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"kind": self.kind.value, "data": self.data.hex()}
        if self.function_address is not None:
            payload["function_address"] = self.function_address
        if self.weight:
            payload["weight"] = self.weight
        if self.disassembly:
            payload["disassembly"] = list(self.disassembly)
        if self.min_length is not None:
            payload["min_length"] = self.min_length
        if self.max_length is not None:
            payload["max_length"] = self.max_length
        if self.stable_nibbles is not None:
            payload["stable_nibbles"] = sorted(self.stable_nibbles)
        return payload


@dataclass(frozen=True)
class ItemRegions:
    """The ordered regions contributed by a single source item."""

    item_id: str
    regions: Tuple[ByteRegion, ...] = tuple()

    def __post_init__(self) -> None:
        object.__setattr__(self, "regions", tuple(self.regions))

    def __len__(self) -> int:
        return len(self.regions)

    def __iter__(self) -> Iterator[ByteRegion]:
        return iter(self.regions)

    def function_addresses(self) -> List[Optional[int]]:
        return [region.function_address for region in self.regions]

    @classmethod
    def from_dict(cls, item_id: str, entries: Iterable[Mapping[str, Any]]) -> "ItemRegions":
        return cls(item_id, tuple(ByteRegion.from_dict(entry) for entry in entries))


@dataclass(frozen=True)
class MatchSnapshot:
    """Read-only view of the matcher output used by one or more runs.

    ``similarity`` maps a listed item to an ordered sequence of
    ``(candidate, score)`` pairs.  The order of that sequence is meaningful:
    it is the insertion order the selector falls back to when scores tie.
    """

    items: Mapping[str, ItemRegions] = field(default_factory=dict)
    similarity: Mapping[str, Sequence[Tuple[str, float]]] = field(default_factory=dict)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self.items

    def regions_for(self, item_id: str) -> Optional[ItemRegions]:
        return self.items.get(item_id)

    def similar_to(self, item_id: str) -> Sequence[Tuple[str, float]]:
        return self.similarity.get(item_id, ())

    @classmethod
    def from_items(
        cls,
        items: Iterable[ItemRegions],
        similarity: Optional[Mapping[str, Sequence[Tuple[str, float]]]] = None,
    ) -> "MatchSnapshot":
        mapping: Dict[str, ItemRegions] = {}
        for entry in items:
            if entry.item_id in mapping:
                raise ValueError(f"duplicate item {entry.item_id!r} in snapshot")
            mapping[entry.item_id] = entry
        return cls(mapping, dict(similarity or {}))

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "MatchSnapshot":
        """Create a snapshot from the JSON form used by the CLI.

        ``items`` maps item ids to lists of region dictionaries.  ``similarity``
        maps listed items either to ``[[candidate, score], ...]`` or to an
        object whose key order is preserved.
        """

        items = payload.get("items", {})
        if not isinstance(items, Mapping):
            raise ValueError("snapshot 'items' must be a JSON object")
        raw_similarity = payload.get("similarity", {})
        if not isinstance(raw_similarity, Mapping):
            raise ValueError("snapshot 'similarity' must be a JSON object")
        similarity: Dict[str, Tuple[Tuple[str, float], ...]] = {}
        for item_id, scores in raw_similarity.items():
            if isinstance(scores, Mapping):
                pairs = scores.items()
            else:
                pairs = scores
            similarity[item_id] = tuple((str(candidate), float(score)) for candidate, score in pairs)
        return cls.from_items(
            (ItemRegions.from_dict(item_id, entries) for item_id, entries in items.items()),
            similarity,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": {
                item_id: [region.to_dict() for region in entry.regions]
                for item_id, entry in self.items.items()
            },
            "similarity": {
                item_id: [[candidate, score] for candidate, score in pairs]
                for item_id, pairs in self.similarity.items()
            },
        }
