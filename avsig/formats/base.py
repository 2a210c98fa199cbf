"""Shared infrastructure for the signature dialects."""

from __future__ import annotations

from typing import List, Optional, Tuple

from ..errors import UnsupportedConstruct
from ..pattern import NO_GAP, UNBOUNDED, Fragment, Pattern, Qualifier
from ..policy import GenerationPolicy
from ..signature import SignatureBody, SignatureType


class SignatureFormatter:
    """Base class for rendering a :class:`~avsig.pattern.Pattern`.

    Subclasses set :attr:`max_jump` to the largest gap bound their syntax can
    express; ``None`` means there is no limit.
    """

    signature_type: SignatureType = SignatureType.INVALID
    max_jump: Optional[int] = None

    def format(self, pattern: Pattern, policy: GenerationPolicy) -> SignatureBody:
        raise NotImplementedError

    def check_qualifiers(self, pattern: Pattern) -> None:
        if self.max_jump is None:
            return
        for index, fragment in enumerate(pattern):
            qualifier = fragment.qualifier
            bound = qualifier.min if qualifier.is_unbounded else qualifier.max
            if bound > self.max_jump:
                raise UnsupportedConstruct(
                    f"gap {qualifier.describe()} exceeds the {self.signature_type.name} "
                    f"jump limit of {self.max_jump} bytes",
                    context=f"fragment {index}",
                )

    @staticmethod
    def require_fragments(pattern: Pattern, dialect: str) -> None:
        if not pattern:
            raise UnsupportedConstruct(f"{dialect} cannot express an empty pattern")


def detection_name(policy: GenerationPolicy) -> str:
    if policy.detection_name:
        return policy.detection_name
    if policy.unique_signature_id:
        return f"avsig_{policy.unique_signature_id}"
    return "avsig_unnamed"


class PatternReader:
    """Collect nibbles and gaps parsed from a rendered signature body."""

    def __init__(self) -> None:
        self.fragments: List[Fragment] = []
        self._nibbles: List[Optional[int]] = []

    def nibble(self, value: Optional[int]) -> None:
        self._nibbles.append(value)

    def gap(self, qualifier: Qualifier) -> None:
        if not self._nibbles:
            raise ValueError(f"gap {qualifier.describe()} does not follow any bytes")
        self._close(qualifier)

    def finish(self) -> Pattern:
        if self._nibbles:
            self._close(NO_GAP)
        return Pattern(tuple(self.fragments))

    def _close(self, qualifier: Qualifier) -> None:
        if len(self._nibbles) % 2:
            raise ValueError("odd number of nibbles in signature fragment")
        data, masked = _pack(self._nibbles)
        self.fragments.append(Fragment(data, qualifier, masked_nibbles=masked))
        self._nibbles = []


def _pack(nibbles: List[Optional[int]]) -> Tuple[bytes, frozenset]:
    masked = frozenset(index for index, value in enumerate(nibbles) if value is None)
    values = [0 if value is None else value for value in nibbles]
    data = bytes((values[i] << 4) | values[i + 1] for i in range(0, len(values), 2))
    return data, masked


def parse_range(text: str, separator: str) -> Qualifier:
    """Parse ``n``, ``n-m``, ``-m``, ``n-`` and ``-`` jump bodies."""

    text = text.strip()
    if separator not in text:
        value = int(text)
        return Qualifier(value, value)
    low, _, high = text.partition(separator)
    low_value = int(low) if low.strip() else 0
    high_value = int(high) if high.strip() else UNBOUNDED
    return Qualifier(low_value, high_value)
