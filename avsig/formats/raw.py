"""Engine independent wildcarded byte form."""

from __future__ import annotations

from ..pattern import Pattern, Qualifier
from ..policy import GenerationPolicy
from ..signature import RawSignature, SignatureType
from .base import SignatureFormatter


def render_raw_gap(qualifier: Qualifier) -> str:
    if qualifier.is_empty:
        return ""
    if qualifier.is_unbounded:
        return "*" if qualifier.min == 0 else f"{{{qualifier.min},}}"
    return f"{{{qualifier.min},{qualifier.max}}}"


def render_raw(pattern: Pattern) -> str:
    """Render ``AABB{2,2}C?DD*`` style text for ``pattern``."""

    return "".join(
        fragment.hex_digits() + render_raw_gap(fragment.qualifier) for fragment in pattern
    )


class RawFormatter(SignatureFormatter):
    signature_type = SignatureType.RAW

    def format(self, pattern: Pattern, policy: GenerationPolicy) -> RawSignature:
        return RawSignature(tuple(pattern), render_raw(pattern))
