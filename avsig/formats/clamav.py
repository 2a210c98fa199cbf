"""ClamAV extended (``.ndb``) hex signatures.

A rendered signature is a single line ``Name:TargetType:Offset:HexSignature``.
The generator always targets any file type (``0``) at any offset (``*``).
Inside the hex signature ``?`` masks a nibble and gaps use ClamAV's wildcard
syntax: ``*`` for any number of bytes, ``{n}``, ``{n-m}``, ``{-m}`` and
``{n-}`` for bounded or half-open ranges.
"""

from __future__ import annotations

import re

from ..pattern import ANY_GAP, Pattern, Qualifier
from ..policy import GenerationPolicy
from ..signature import ClamAvSignature, SignatureType
from .base import PatternReader, SignatureFormatter, detection_name, parse_range


CLAMAV_MAX_JUMP = 0x7FFFFFFF
TARGET_ANY = 0
OFFSET_ANY = "*"

_NAME_UNSAFE = re.compile(r"[:\s]")


def render_clamav_gap(qualifier: Qualifier) -> str:
    if qualifier.is_empty:
        return ""
    if qualifier.is_unbounded:
        return "*" if qualifier.min == 0 else f"{{{qualifier.min}-}}"
    if qualifier.is_fixed:
        return f"{{{qualifier.min}}}"
    if qualifier.min == 0:
        return f"{{-{qualifier.max}}}"
    return f"{{{qualifier.min}-{qualifier.max}}}"


def render_clamav_hex(pattern: Pattern) -> str:
    return "".join(
        fragment.hex_digits(upper=False) + render_clamav_gap(fragment.qualifier)
        for fragment in pattern
    )


def clamav_name(policy: GenerationPolicy) -> str:
    return _NAME_UNSAFE.sub("_", detection_name(policy))


class ClamAvFormatter(SignatureFormatter):
    signature_type = SignatureType.CLAMAV
    max_jump = CLAMAV_MAX_JUMP

    def format(self, pattern: Pattern, policy: GenerationPolicy) -> ClamAvSignature:
        self.require_fragments(pattern, "ClamAV")
        self.check_qualifiers(pattern)
        hexsig = render_clamav_hex(pattern)
        return ClamAvSignature(f"{clamav_name(policy)}:{TARGET_ANY}:{OFFSET_ANY}:{hexsig}")


def decode_clamav(text: str) -> Pattern:
    """Parse a ClamAV line or bare hex signature back into a pattern."""

    text = text.strip()
    if ":" in text:
        text = text.split(":", 3)[-1]
    reader = PatternReader()
    position = 0
    while position < len(text):
        char = text[position]
        if char == "?":
            reader.nibble(None)
        elif char == "*":
            reader.gap(ANY_GAP)
        elif char == "{":
            end = text.index("}", position)
            reader.gap(parse_range(text[position + 1 : end], "-"))
            position = end
        elif char in "0123456789abcdefABCDEF":
            reader.nibble(int(char, 16))
        else:
            raise ValueError(f"unexpected character {char!r} at offset {position}")
        position += 1
    return reader.finish()
