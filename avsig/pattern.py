"""In-memory representation of a signature body.

A :class:`Pattern` is an ordered sequence of :class:`Fragment` objects.  Each
fragment stores a run of literal bytes followed by a :class:`Qualifier` that
describes how many arbitrary bytes may appear before the next fragment, much
like ``.{min,max}`` in a regular expression.  Individual nibbles inside the
literal bytes can be masked out; this is how instruction immediates that only
differ in a few bits stay in the signature instead of being replaced by a
whole-byte wildcard.

The structures are immutable.  Operations such as :meth:`Pattern.without`
return a new pattern, which keeps a single generation run free of aliasing
surprises when the trimmer explores removals.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Iterator, List, Optional, Sequence, Tuple


UNBOUNDED = -1


@dataclass(frozen=True)
class Qualifier:
    """Byte-count range of the wildcard gap following a fragment."""

    min: int = 0
    max: int = 0

    def __post_init__(self) -> None:
        if self.min < 0:
            raise ValueError(f"qualifier minimum must be non-negative, got {self.min}")
        if self.max != UNBOUNDED and self.max < self.min:
            raise ValueError(f"qualifier maximum {self.max} is below minimum {self.min}")

    @property
    def is_unbounded(self) -> bool:
        return self.max == UNBOUNDED

    @property
    def is_empty(self) -> bool:
        """Return ``True`` for ``{0,0}``: the next fragment follows directly."""

        return self.min == 0 and self.max == 0

    @property
    def is_fixed(self) -> bool:
        return not self.is_unbounded and self.min == self.max

    def span(self, length: int, following: "Qualifier") -> "Qualifier":
        """Return the gap covering this gap, ``length`` bytes and ``following``."""

        low = self.min + length + following.min
        if self.is_unbounded or following.is_unbounded:
            return Qualifier(low, UNBOUNDED)
        return Qualifier(low, self.max + length + following.max)

    def describe(self) -> str:
        upper = "-1" if self.is_unbounded else str(self.max)
        return f"{{{self.min},{upper}}}"


NO_GAP = Qualifier(0, 0)
ANY_GAP = Qualifier(0, UNBOUNDED)


@dataclass(frozen=True)
class Fragment:
    """A run of literal bytes bounded by wildcard qualifiers.

    ``weight`` reflects how often the originating function occurs: the lower
    the weight, the rarer the function and the more valuable the bytes are to
    a trimmed signature.  ``masked_nibbles`` holds nibble indices into
    ``data``; index ``2 * i`` is the high nibble of byte ``i`` and ``2 * i + 1``
    its low nibble.
    """

    data: bytes
    qualifier: Qualifier = NO_GAP
    weight: int = 0
    disassembly: Tuple[str, ...] = tuple()
    masked_nibbles: FrozenSet[int] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", bytes(self.data))
        object.__setattr__(self, "disassembly", tuple(self.disassembly))
        object.__setattr__(self, "masked_nibbles", frozenset(self.masked_nibbles))
        if self.weight < 0:
            raise ValueError(f"fragment weight must be non-negative, got {self.weight}")
        limit = 2 * len(self.data)
        for index in self.masked_nibbles:
            if not 0 <= index < limit:
                raise ValueError(
                    f"masked nibble {index} is outside the {len(self.data)}-byte fragment"
                )

    def __len__(self) -> int:
        return len(self.data)

    def nibble(self, index: int) -> int:
        value = self.data[index // 2]
        return value >> 4 if index % 2 == 0 else value & 0x0F

    def is_masked(self, index: int) -> bool:
        return index in self.masked_nibbles

    def nibbles(self) -> Iterator[Optional[int]]:
        """Yield every nibble value in order, ``None`` for masked positions."""

        for index in range(2 * len(self.data)):
            yield None if index in self.masked_nibbles else self.nibble(index)

    def hex_digits(self, *, upper: bool = True, masked: str = "?") -> str:
        digits = "0123456789ABCDEF" if upper else "0123456789abcdef"
        return "".join(masked if value is None else digits[value] for value in self.nibbles())

    def with_qualifier(self, qualifier: Qualifier) -> "Fragment":
        return Fragment(self.data, qualifier, self.weight, self.disassembly, self.masked_nibbles)

    def with_weight(self, weight: int) -> "Fragment":
        return Fragment(self.data, self.qualifier, weight, self.disassembly, self.masked_nibbles)


@dataclass(frozen=True)
class Pattern(Sequence[Fragment]):
    """Ordered sequence of fragments forming one candidate signature body."""

    fragments: Tuple[Fragment, ...] = tuple()

    def __post_init__(self) -> None:
        object.__setattr__(self, "fragments", tuple(self.fragments))

    @classmethod
    def of(cls, fragments: Iterable[Fragment]) -> "Pattern":
        return cls(tuple(fragments))

    def __len__(self) -> int:
        return len(self.fragments)

    def __getitem__(self, index):  # type: ignore[override]
        return self.fragments[index]

    def __iter__(self) -> Iterator[Fragment]:
        return iter(self.fragments)

    @property
    def total_length(self) -> int:
        """Number of bytes stored across all fragments, masked bytes included."""

        return sum(len(fragment.data) for fragment in self.fragments)

    def content_hash(self) -> bytes:
        """Return a SHA-256 digest over bytes, qualifiers and masks."""

        digest = hashlib.sha256()
        for fragment in self.fragments:
            digest.update(len(fragment.data).to_bytes(4, "little"))
            digest.update(fragment.data)
            digest.update(fragment.qualifier.min.to_bytes(8, "little", signed=True))
            digest.update(fragment.qualifier.max.to_bytes(8, "little", signed=True))
            for index in sorted(fragment.masked_nibbles):
                digest.update(index.to_bytes(4, "little"))
            digest.update(b"\xff")
        return digest.digest()

    def without(self, index: int) -> "Pattern":
        """Return a copy of the pattern with fragment ``index`` removed.

        The gap around the removed fragment is folded into its neighbour so
        the remaining fragments keep their relative distances.
        """

        count = len(self.fragments)
        if not 0 <= index < count:
            raise IndexError(f"fragment index {index} out of range for {count} fragments")
        removed = self.fragments[index]
        fragments: List[Fragment] = list(self.fragments)
        del fragments[index]
        if index == count - 1 and fragments:
            fragments[-1] = fragments[-1].with_qualifier(removed.qualifier)
        elif index > 0:
            previous = fragments[index - 1]
            merged = previous.qualifier.span(len(removed.data), removed.qualifier)
            fragments[index - 1] = previous.with_qualifier(merged)
        return Pattern(tuple(fragments))

    def check_invariants(self) -> None:
        """Raise :class:`ValueError` if a non-final fragment is unbounded."""

        for index, fragment in enumerate(self.fragments[:-1]):
            if fragment.qualifier.is_unbounded:
                raise ValueError(
                    f"fragment {index} carries unbounded qualifier "
                    f"{fragment.qualifier.describe()} but is not the final fragment"
                )

    def describe(self) -> str:
        parts = []
        for fragment in self.fragments:
            parts.append(f"{fragment.hex_digits()}{fragment.qualifier.describe()}")
        return " ".join(parts)
