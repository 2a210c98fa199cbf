"""Turn aligned matcher regions into a :class:`~avsig.pattern.Pattern`.

The builder walks the region lists of all selected items in lock-step.  Each
position ("column") ends up in one of three states:

``literal``
    every item marks the region common and carries identical bytes, the
    bytes go into the current fragment verbatim;
``masked``
    the region has the same fixed length everywhere and is partially
    stable: some nibbles are identical across items (or listed in the
    matcher's ``stable_nibbles``) and some are not.  The reference bytes go
    into the current fragment with the unstable nibbles masked;
``gap``
    anything else, including columns removed by the function filter.  The
    length range observed for the column is accumulated per item and closes
    the current fragment with a qualifier once the next literal bytes arrive.

Leading gaps are dropped because a signature never starts with a wildcard.
The final fragment keeps an unbounded qualifier only when the matcher reports
unbounded variability after the last literal bytes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Sequence, Tuple

from .errors import InsufficientData
from .pattern import ANY_GAP, NO_GAP, UNBOUNDED, Fragment, Pattern, Qualifier
from .policy import DEFAULT_MIN_PIECE_LENGTH, GenerationPolicy
from .regions import ByteRegion
from .selector import Selection


logger = logging.getLogger(__name__)


@dataclass
class _FragmentDraft:
    data: bytearray = field(default_factory=bytearray)
    masked: set = field(default_factory=set)
    weight: int = 0
    disassembly: List[str] = field(default_factory=list)

    def extend(self, region: ByteRegion, data: bytes, masked: FrozenSet[int]) -> None:
        if not self.data:
            self.weight = region.weight
        offset = 2 * len(self.data)
        self.masked.update(offset + index for index in masked)
        self.data.extend(data)
        self.disassembly.extend(region.disassembly)

    def freeze(self, qualifier: Qualifier) -> Fragment:
        return Fragment(
            bytes(self.data),
            qualifier,
            self.weight,
            tuple(self.disassembly),
            frozenset(self.masked),
        )


class _GapAccumulator:
    """Per-item running sum of skipped region lengths."""

    def __init__(self, width: int) -> None:
        self.ranges: List[Tuple[int, int]] = [(0, 0)] * width

    def add(self, column: Sequence[ByteRegion]) -> None:
        updated = []
        for (low, high), region in zip(self.ranges, column):
            region_low, region_high = region.length_range()
            if high == UNBOUNDED or region_high == UNBOUNDED:
                updated.append((low + region_low, UNBOUNDED))
            else:
                updated.append((low + region_low, high + region_high))
        self.ranges = updated

    @property
    def is_empty(self) -> bool:
        return all(entry == (0, 0) for entry in self.ranges)

    def qualifier(self) -> Qualifier:
        low = min(entry[0] for entry in self.ranges)
        if any(entry[1] == UNBOUNDED for entry in self.ranges):
            return Qualifier(low, UNBOUNDED)
        return Qualifier(low, max(entry[1] for entry in self.ranges))

    def reset(self) -> None:
        self.ranges = [(0, 0)] * len(self.ranges)


class PatternBuilder:
    """Build a pattern from the regions of the selected items."""

    def __init__(
        self,
        *,
        min_piece_length: int = DEFAULT_MIN_PIECE_LENGTH,
        nibble_masking: bool = True,
    ) -> None:
        self.min_piece_length = min_piece_length
        self.nibble_masking = nibble_masking

    @classmethod
    def from_policy(cls, policy: GenerationPolicy) -> "PatternBuilder":
        return cls(
            min_piece_length=policy.min_piece_length,
            nibble_masking=not policy.disable_nibble_masking,
        )

    def build(self, selection: Selection) -> Pattern:
        items = selection.items
        if not items:
            raise InsufficientData("no items selected")
        reference = items[0]
        count = len(reference.regions)
        for entry in items[1:]:
            if len(entry.regions) != count:
                raise InsufficientData(
                    f"region layout has {len(entry.regions)} regions, expected {count}",
                    context=entry.item_id,
                )

        fragments: List[Fragment] = []
        draft: Optional[_FragmentDraft] = None
        gap = _GapAccumulator(len(items))
        dropped_leading = False

        for index in range(count):
            column = [entry.regions[index] for entry in items]
            if index in selection.excluded:
                gap.add(column)
                continue
            resolved = self._resolve_column(column)
            if resolved is None:
                gap.add(column)
                continue
            data, masked = resolved
            if not data:
                continue
            if draft is None:
                dropped_leading = not gap.is_empty
            elif not gap.is_empty:
                qualifier = gap.qualifier()
                if qualifier.is_unbounded:
                    raise InsufficientData(
                        "unbounded variable region between literal bytes",
                        context=f"{reference.item_id} region {index - 1}",
                    )
                fragments.append(draft.freeze(qualifier))
                draft = None
            if draft is None:
                draft = _FragmentDraft()
            gap.reset()
            draft.extend(column[0], data, masked)

        if draft is not None:
            trailing = ANY_GAP if gap.qualifier().is_unbounded else NO_GAP
            fragments.append(draft.freeze(trailing))

        if dropped_leading:
            logger.debug("%s: dropped leading wildcard", reference.item_id)
        pattern = Pattern(tuple(fragments))
        self._check_usable(pattern, reference.item_id)
        logger.debug(
            "%s: built %d fragment(s), %d byte(s)",
            reference.item_id,
            len(pattern),
            pattern.total_length,
        )
        return pattern

    def _resolve_column(
        self, column: Sequence[ByteRegion]
    ) -> Optional[Tuple[bytes, FrozenSet[int]]]:
        """Return the literal bytes and masked nibbles for ``column``.

        ``None`` means the column has to be expressed as a wildcard gap.
        """

        literal = self._literal_bytes(column)
        if literal is not None:
            return literal, frozenset()
        if not self.nibble_masking:
            return None
        return self._masked_bytes(column)

    @staticmethod
    def _literal_bytes(column: Sequence[ByteRegion]) -> Optional[bytes]:
        data = column[0].data
        for region in column:
            if not region.is_common or region.data != data:
                return None
        return data

    @staticmethod
    def _masked_bytes(column: Sequence[ByteRegion]) -> Optional[Tuple[bytes, FrozenSet[int]]]:
        reference = column[0]
        length = reference.fixed_length
        if not length or len(reference.data) != length:
            return None
        if any(region.fixed_length != length for region in column):
            return None

        nibble_count = 2 * length
        if reference.stable_nibbles is not None:
            stable = frozenset(index for index in reference.stable_nibbles if 0 <= index < nibble_count)
        else:
            if any(len(region.data) != length for region in column):
                return None
            stable = frozenset(
                index
                for index in range(nibble_count)
                if len({_nibble(region.data, index) for region in column}) == 1
            )
        masked = frozenset(range(nibble_count)) - stable
        # Variable bytes are never emitted fully literal.
        if not stable or not masked:
            return None
        return reference.data, masked

    def _check_usable(self, pattern: Pattern, item_id: str) -> None:
        if not pattern:
            raise InsufficientData("selected items share no literal bytes", context=item_id)
        if all(len(fragment) < self.min_piece_length for fragment in pattern):
            longest = max(len(fragment) for fragment in pattern)
            raise InsufficientData(
                f"longest fragment has {longest} byte(s), below the minimum piece length "
                f"of {self.min_piece_length}",
                context="min_piece_length",
            )
        pattern.check_invariants()


def _nibble(data: bytes, index: int) -> int:
    value = data[index // 2]
    return value >> 4 if index % 2 == 0 else value & 0x0F


def build_pattern(selection: Selection, policy: GenerationPolicy) -> Pattern:
    return PatternBuilder.from_policy(policy).build(selection)
