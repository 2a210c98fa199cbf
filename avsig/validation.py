"""Compile rendered YARA rules to catch syntax the engine would reject."""

from __future__ import annotations

import yara

from .errors import UnsupportedConstruct
from .signature import EncodedSignature, SignatureType


def compile_yara_rule(text: str) -> "yara.Rules":
    try:
        return yara.compile(source=text)
    except yara.SyntaxError as exc:
        raise UnsupportedConstruct(f"YARA rejected the rule: {exc}") from exc
    except yara.Error as exc:
        raise UnsupportedConstruct(f"YARA could not compile the rule: {exc}") from exc


def validate_signature(signature: EncodedSignature) -> None:
    """Compile ``signature`` if it is a YARA rule; other dialects pass through."""

    if signature.signature_type is SignatureType.YARA:
        compile_yara_rule(signature.text)
