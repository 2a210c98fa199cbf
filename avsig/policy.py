"""Generation policy describing how a signature should be produced."""

from __future__ import annotations

import math
from dataclasses import dataclass, fields, replace
from enum import IntEnum
from typing import Any, Dict, Iterable, Mapping, Tuple, Type, TypeVar, Union

from .errors import InvalidPolicy
from .pattern import UNBOUNDED
from .registry import POLICY_FIELDS, TRIM_ALGORITHM_RETIRED


class TrimAlgorithm(IntEnum):
    """Strategies for shortening a signature to fit the trim budget."""

    TRIM_NONE = 0
    TRIM_LAST = 1
    TRIM_FIRST = 2
    TRIM_RANDOM = 4
    TRIM_WEIGHTED = 5
    TRIM_WEIGHTED_GREEDY = 6


class ItemSelection(IntEnum):
    ITEMS_EXACT = 0
    ITEMS_SIMILAR = 1


class FunctionFilterMode(IntEnum):
    FILTER_NONE = 0
    FILTER_BLACKLIST = 1
    FILTER_WHITELIST = 2


MetaValue = Union[str, int, bool]

DEFAULT_MIN_PIECE_LENGTH = 4
INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1


@dataclass(frozen=True)
class MetaEntry:
    """Key-value annotation rendered by engines that support metadata."""

    key: str
    value: MetaValue

    @property
    def kind(self) -> str:
        # bool must be tested before int, it is a subclass.
        if isinstance(self.value, bool):
            return "bool"
        if isinstance(self.value, int):
            return "int"
        if isinstance(self.value, str):
            return "string"
        raise InvalidPolicy(
            f"unsupported metadata value type {type(self.value).__name__}",
            context=f"meta[{self.key!r}]",
        )

    def validate(self) -> str:
        """Return the value kind, raising for empty keys or unsupported values."""

        if not isinstance(self.key, str) or not self.key:
            raise InvalidPolicy("metadata keys must be non-empty strings", context="meta")
        return self.kind

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, f"{self.kind}_value": self.value}

    @classmethod
    def from_dict(cls, entry: Mapping[str, Any]) -> "MetaEntry":
        key = entry.get("key")
        if not isinstance(key, str):
            raise InvalidPolicy("metadata entry requires a string key", context="meta")
        values = [name for name in ("string_value", "int_value", "bool_value") if name in entry]
        if "value" in entry and not values:
            return cls(key, entry["value"])
        if len(values) != 1:
            raise InvalidPolicy(
                "metadata entry must carry exactly one typed value", context=f"meta[{key!r}]"
            )
        return cls(key, entry[values[0]])


@dataclass(frozen=True)
class GenerationPolicy:
    """Caller supplied request for one signature.

    Only the fields that steer pattern construction are interpreted by the
    pipeline.  ``requester``, ``timestamp``, ``unique_signature_id`` and
    ``signature_groups`` are bookkeeping and travel unchanged alongside the
    encoded signature.  ``filtered_function_addresses`` refer to the first
    selected item only.
    """

    requester: str = ""
    timestamp: int = 0
    unique_signature_id: str = ""
    detection_name: str = ""
    item_ids: Tuple[str, ...] = tuple()
    trim_length: int = UNBOUNDED
    trim_algorithm: TrimAlgorithm = TrimAlgorithm.TRIM_NONE
    variant: int = 0
    signature_groups: Tuple[str, ...] = tuple()
    min_piece_length: int = DEFAULT_MIN_PIECE_LENGTH
    tags: Tuple[str, ...] = tuple()
    meta: Tuple[MetaEntry, ...] = tuple()
    item_selection: ItemSelection = ItemSelection.ITEMS_EXACT
    items_min_similarity: float = 0.0
    disable_nibble_masking: bool = False
    disable_publication: bool = False
    filtered_function_addresses: Tuple[int, ...] = tuple()
    function_filter: FunctionFilterMode = FunctionFilterMode.FILTER_NONE

    def __post_init__(self) -> None:
        for name in ("item_ids", "signature_groups", "tags", "meta", "filtered_function_addresses"):
            value = getattr(self, name)
            if isinstance(value, (str, bytes)):
                raise InvalidPolicy(f"{name} must be a sequence, not a string", context=name)
            object.__setattr__(self, name, tuple(value))

    @property
    def has_trim_budget(self) -> bool:
        return self.trim_length != UNBOUNDED

    def validate(self) -> None:
        """Raise :class:`InvalidPolicy` describing the first malformed field."""

        if not self.item_ids:
            raise InvalidPolicy("at least one source item is required", context="item_ids")
        for item_id in self.item_ids:
            if not isinstance(item_id, str) or not item_id:
                raise InvalidPolicy(f"invalid item identifier {item_id!r}", context="item_ids")
        _check_int(self.trim_length, "trim_length", UNBOUNDED, INT32_MAX)
        _check_int(self.variant, "variant", INT32_MIN, INT32_MAX)
        _coerce_enum(TrimAlgorithm, self.trim_algorithm, "trim_algorithm")
        _coerce_enum(ItemSelection, self.item_selection, "item_selection")
        _coerce_enum(FunctionFilterMode, self.function_filter, "function_filter")
        _check_int(self.min_piece_length, "min_piece_length", 1, INT32_MAX)
        similarity = self.items_min_similarity
        if (
            isinstance(similarity, bool)
            or not isinstance(similarity, (int, float))
            or not math.isfinite(similarity)
            or similarity < 0
        ):
            raise InvalidPolicy(
                f"minimum similarity must be a finite non-negative number, got {similarity!r}",
                context="items_min_similarity",
            )
        if self.function_filter != FunctionFilterMode.FILTER_NONE and not self.filtered_function_addresses:
            raise InvalidPolicy(
                f"{FunctionFilterMode(self.function_filter).name} requires at least one function address",
                context="filtered_function_addresses",
            )
        for address in self.filtered_function_addresses:
            if isinstance(address, bool) or not isinstance(address, int) or address < 0:
                raise InvalidPolicy(
                    f"invalid function address {address!r}", context="filtered_function_addresses"
                )
        for entry in self.meta:
            entry.validate()

    def with_items(self, item_ids: Iterable[str]) -> "GenerationPolicy":
        return replace(self, item_ids=tuple(item_ids))

    # ------------------------------------------------------------------
    # serialisation
    # ------------------------------------------------------------------
    def to_dict(self, *, by_number: bool = False) -> Dict[Any, Any]:
        """Return a JSON-compatible mapping of the policy.

        Keys are field names, or stable field numbers when ``by_number`` is
        set.  Enum values are stored by name in the former and by value in the
        latter form.
        """

        payload: Dict[Any, Any] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if isinstance(value, IntEnum):
                value = int(value) if by_number else value.name
            elif item.name == "meta":
                value = [entry.to_dict() for entry in value]
            elif isinstance(value, tuple):
                value = list(value)
            key = POLICY_FIELDS.number(item.name) if by_number else item.name
            payload[key] = value
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[Any, Any]) -> "GenerationPolicy":
        """Build a policy from :meth:`to_dict` output (either key style)."""

        if not isinstance(payload, Mapping):
            raise InvalidPolicy("policy must be a mapping")
        values: Dict[str, Any] = {}
        for raw_key, value in payload.items():
            name = _field_name(raw_key)
            if name in values:
                raise InvalidPolicy(f"field {name!r} given twice", context=name)
            values[name] = value

        if "trim_algorithm" in values:
            values["trim_algorithm"] = _coerce_enum(
                TrimAlgorithm, values["trim_algorithm"], "trim_algorithm"
            )
        if "item_selection" in values:
            values["item_selection"] = _coerce_enum(
                ItemSelection, values["item_selection"], "item_selection"
            )
        if "function_filter" in values:
            values["function_filter"] = _coerce_enum(
                FunctionFilterMode, values["function_filter"], "function_filter"
            )
        if "meta" in values:
            meta = values["meta"]
            if isinstance(meta, Mapping):
                values["meta"] = tuple(MetaEntry(str(key), value) for key, value in meta.items())
            else:
                values["meta"] = tuple(
                    entry if isinstance(entry, MetaEntry) else MetaEntry.from_dict(entry)
                    for entry in meta
                )
        if "items_min_similarity" in values:
            values["items_min_similarity"] = _coerce_similarity(values["items_min_similarity"])
        return cls(**values)


E = TypeVar("E", bound=IntEnum)


def _coerce_enum(enum_type: Type[E], value: Any, name: str) -> E:
    if isinstance(value, enum_type):
        return value
    if isinstance(value, str):
        try:
            return enum_type[value.upper()]
        except KeyError:
            raise InvalidPolicy(f"unknown {enum_type.__name__} {value!r}", context=name) from None
    if isinstance(value, int) and not isinstance(value, bool):
        if enum_type is TrimAlgorithm and value in TRIM_ALGORITHM_RETIRED:
            raise InvalidPolicy(f"trim algorithm value {value} is retired", context=name)
        try:
            return enum_type(value)
        except ValueError:
            raise InvalidPolicy(f"unknown {enum_type.__name__} value {value}", context=name) from None
    raise InvalidPolicy(f"cannot interpret {value!r} as {enum_type.__name__}", context=name)


def _check_int(value: Any, name: str, low: int, high: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidPolicy(f"{name} must be an integer, got {value!r}", context=name)
    if not low <= value <= high:
        raise InvalidPolicy(f"{name} must be between {low} and {high}, got {value}", context=name)


def _coerce_similarity(value: Any) -> float:
    try:
        if isinstance(value, bool):
            raise TypeError(value)
        return float(value)
    except (TypeError, ValueError):
        raise InvalidPolicy(
            f"cannot interpret {value!r} as a similarity score", context="items_min_similarity"
        ) from None


def _field_name(key: Any) -> str:
    if isinstance(key, str) and key.isdigit():
        key = int(key)
    if isinstance(key, int) and not isinstance(key, bool):
        if POLICY_FIELDS.is_retired(key):
            raise InvalidPolicy(f"policy field number {key} is retired", context=str(key))
        try:
            return POLICY_FIELDS.name(key)
        except KeyError:
            raise InvalidPolicy(f"unknown policy field number {key}", context=str(key)) from None
    if isinstance(key, str) and key in POLICY_FIELDS:
        return key
    raise InvalidPolicy(f"unknown policy field {key!r}", context=str(key))
