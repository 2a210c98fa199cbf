"""Append-only registry of stable field identifiers.

Stored policies and signatures address their fields by number.  Once a number
has been handed out it belongs to that field forever; removed fields retire
their number instead of freeing it.  The registries below are populated at
import time so a clash surfaces as soon as the package is loaded.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, Iterator, Tuple


class FieldRegistry:
    """Map field names of a single record type to stable numbers."""

    def __init__(self, record: str, *, retired: Iterable[int] = ()) -> None:
        self.record = record
        self._by_name: Dict[str, int] = {}
        self._by_number: Dict[int, str] = {}
        self._retired: FrozenSet[int] = frozenset(retired)

    def assign(self, name: str, number: int) -> None:
        """Register ``name`` under ``number``.

        Raises :class:`ValueError` if the number is retired, already taken, or
        if the name already owns a different number.
        """

        if number <= 0:
            raise ValueError(f"{self.record}: field number must be positive, got {number}")
        if number in self._retired:
            raise ValueError(f"{self.record}: field number {number} is retired and cannot be reused")
        owner = self._by_number.get(number)
        if owner is not None and owner != name:
            raise ValueError(f"{self.record}: field number {number} already belongs to {owner!r}")
        existing = self._by_name.get(name)
        if existing is not None and existing != number:
            raise ValueError(f"{self.record}: field {name!r} is already assigned number {existing}")
        self._by_name[name] = number
        self._by_number[number] = name

    def retire(self, number: int) -> None:
        if number in self._by_number:
            raise ValueError(
                f"{self.record}: field number {number} is live ({self._by_number[number]!r})"
            )
        self._retired = self._retired | {number}

    def number(self, name: str) -> int:
        try:
            return self._by_name[name]
        except KeyError:
            raise KeyError(f"{self.record}: unknown field {name!r}") from None

    def name(self, number: int) -> str:
        if number in self._retired:
            raise KeyError(f"{self.record}: field number {number} is retired")
        try:
            return self._by_number[number]
        except KeyError:
            raise KeyError(f"{self.record}: unknown field number {number}") from None

    def is_retired(self, number: int) -> bool:
        return number in self._retired

    @property
    def retired(self) -> FrozenSet[int]:
        return self._retired

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __iter__(self) -> Iterator[Tuple[str, int]]:
        return iter(sorted(self._by_name.items(), key=lambda entry: entry[1]))

    def __len__(self) -> int:
        return len(self._by_name)


def build_registry(
    record: str, fields: Iterable[Tuple[str, int]], *, retired: Iterable[int] = ()
) -> FieldRegistry:
    registry = FieldRegistry(record, retired=retired)
    for name, number in fields:
        registry.assign(name, number)
    return registry


POLICY_FIELDS = build_registry(
    "GenerationPolicy",
    (
        ("requester", 1),
        ("timestamp", 2),
        ("unique_signature_id", 4),
        ("detection_name", 5),
        ("item_ids", 6),
        ("trim_length", 7),
        ("trim_algorithm", 8),
        ("variant", 9),
        ("signature_groups", 10),
        ("min_piece_length", 11),
        ("tags", 12),
        ("meta", 13),
        ("item_selection", 14),
        ("items_min_similarity", 15),
        ("disable_nibble_masking", 16),
        ("disable_publication", 17),
        ("filtered_function_addresses", 18),
        ("function_filter", 19),
    ),
    retired=(3,),
)

SIGNATURE_FIELDS = build_registry(
    "Signature",
    (
        ("raw_signature", 2),
        ("clam_av_signature", 3),
        ("yara_signature", 4),
        ("definition", 5),
    ),
    retired=(1, 6),
)

PIECE_FIELDS = build_registry(
    "Fragment",
    (
        ("data", 1),
        ("min_qualifier", 2),
        ("max_qualifier", 3),
        ("weight", 4),
        ("disassembly", 5),
        ("masked_nibbles", 6),
    ),
)

# Enum values follow the same rule as field numbers.
TRIM_ALGORITHM_RETIRED = frozenset({3})
