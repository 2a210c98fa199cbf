"""Signature dialects.

Each dialect exposes a :class:`~avsig.formats.base.SignatureFormatter`
subclass.  :func:`formatter_for` returns the formatter for a
:class:`~avsig.signature.SignatureType`.
"""

from __future__ import annotations

from typing import Union

from ..signature import SignatureType
from .base import SignatureFormatter
from .clamav import ClamAvFormatter, decode_clamav
from .raw import RawFormatter, render_raw
from .yara import YaraFormatter, decode_yara


def formatter_for(signature_type: Union[SignatureType, str, int]) -> SignatureFormatter:
    kind = SignatureType.parse(signature_type)
    if kind is SignatureType.RAW:
        return RawFormatter()
    if kind is SignatureType.CLAMAV:
        return ClamAvFormatter()
    if kind is SignatureType.YARA:
        return YaraFormatter()
    raise ValueError(f"no formatter for signature type {kind.name}")


__all__ = [
    "ClamAvFormatter",
    "RawFormatter",
    "SignatureFormatter",
    "YaraFormatter",
    "decode_clamav",
    "decode_yara",
    "formatter_for",
    "render_raw",
]
