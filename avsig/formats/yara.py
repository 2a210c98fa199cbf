"""YARA rule rendering.

The signature becomes a rule with a single anonymous hex string::

    rule Detection_Name : tag_one tag_two
    {
      meta:
        author = "analyst"
        revision = 3
      strings:
        $ = {
          8B FF 55 8B EC [4] 5? 8B
        }
      condition:
        all of them
    }

Masked nibbles render as ``?`` and gaps as YARA jumps (``[n]``, ``[n-m]``,
``[n-]`` and ``[-]``).  YARA refuses jumps longer than :data:`YARA_MAX_JUMP`
bytes, such gaps raise :class:`~avsig.errors.UnsupportedConstruct`.
"""

from __future__ import annotations

import re
from typing import Iterable, List

from ..pattern import Fragment, Pattern, Qualifier
from ..policy import GenerationPolicy, MetaEntry
from ..signature import SignatureType, YaraSignature
from .base import PatternReader, SignatureFormatter, detection_name, parse_range


YARA_MAX_JUMP = 32767
YARA_MAX_IDENTIFIER = 128
TOKENS_PER_LINE = 16

_IDENTIFIER_UNSAFE = re.compile(r"[^A-Za-z0-9_]")
_KEYWORDS = frozenset(
    {
        "all", "and", "any", "ascii", "at", "base64", "base64wide", "condition",
        "contains", "endswith", "entrypoint", "false", "filesize", "for",
        "fullword", "global", "import", "icontains", "iendswith", "iequals",
        "in", "include", "int16", "int16be", "int32", "int32be", "int8",
        "int8be", "istartswith", "matches", "meta", "nocase", "none", "not",
        "of", "or", "private", "rule", "startswith", "strings", "them", "true",
        "uint16", "uint16be", "uint32", "uint32be", "uint8", "uint8be", "wide",
        "xor", "defined",
    }
)


def yara_identifier(name: str) -> str:
    """Coerce ``name`` into a valid YARA identifier."""

    identifier = _IDENTIFIER_UNSAFE.sub("_", name)[:YARA_MAX_IDENTIFIER]
    if not identifier or identifier[0].isdigit() or identifier in _KEYWORDS:
        identifier = ("_" + identifier)[:YARA_MAX_IDENTIFIER]
    return identifier


def yara_string(value: str) -> str:
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    return f'"{escaped}"'


def render_meta_value(entry: MetaEntry) -> str:
    kind = entry.validate()
    if kind == "bool":
        return "true" if entry.value else "false"
    if kind == "int":
        return str(entry.value)
    return yara_string(entry.value)


def render_yara_gap(qualifier: Qualifier) -> str:
    if qualifier.is_empty:
        return ""
    if qualifier.is_unbounded:
        return "[-]" if qualifier.min == 0 else f"[{qualifier.min}-]"
    if qualifier.is_fixed:
        return f"[{qualifier.min}]"
    return f"[{qualifier.min}-{qualifier.max}]"


def _byte_tokens(fragment: Fragment) -> List[str]:
    digits = fragment.hex_digits()
    return [digits[i : i + 2] for i in range(0, len(digits), 2)]


def yara_hex_tokens(pattern: Pattern) -> List[str]:
    tokens: List[str] = []
    for fragment in pattern:
        tokens.extend(_byte_tokens(fragment))
        gap = render_yara_gap(fragment.qualifier)
        if gap:
            tokens.append(gap)
    return tokens


def render_yara_hex(pattern: Pattern, *, indent: str = "      ") -> str:
    tokens = yara_hex_tokens(pattern)
    lines = [
        indent + " ".join(tokens[i : i + TOKENS_PER_LINE])
        for i in range(0, len(tokens), TOKENS_PER_LINE)
    ]
    return "\n".join(lines)


def _unique_identifiers(names: Iterable[str]) -> List[str]:
    seen: List[str] = []
    for name in names:
        identifier = yara_identifier(name)
        if identifier not in seen:
            seen.append(identifier)
    return seen


class YaraFormatter(SignatureFormatter):
    signature_type = SignatureType.YARA
    max_jump = YARA_MAX_JUMP

    def format(self, pattern: Pattern, policy: GenerationPolicy) -> YaraSignature:
        self.require_fragments(pattern, "YARA")
        self.check_qualifiers(pattern)

        header = f"rule {yara_identifier(detection_name(policy))}"
        tags = _unique_identifiers(policy.tags)
        if tags:
            header += " : " + " ".join(tags)

        lines = [header, "{"]
        if policy.meta:
            lines.append("  meta:")
            for entry in policy.meta:
                lines.append(f"    {yara_identifier(entry.key)} = {render_meta_value(entry)}")
        lines.extend(
            [
                "  strings:",
                "    $ = {",
                render_yara_hex(pattern),
                "    }",
                "  condition:",
                "    all of them",
                "}",
            ]
        )
        return YaraSignature("\n".join(lines) + "\n")


def decode_yara(text: str) -> Pattern:
    """Parse the hex string of a rendered rule (or a bare ``{ ... }``) into a pattern."""

    marker = text.find("$")
    if marker != -1:
        start = text.index("{", marker)
    else:
        start = text.find("{")
    if start == -1:
        body = text
    else:
        body = text[start + 1 : text.index("}", start)]

    reader = PatternReader()
    position = 0
    while position < len(body):
        char = body[position]
        if char.isspace():
            pass
        elif char == "?":
            reader.nibble(None)
        elif char == "[":
            end = body.index("]", position)
            reader.gap(parse_range(body[position + 1 : end], "-"))
            position = end
        elif char in "0123456789abcdefABCDEF":
            reader.nibble(int(char, 16))
        else:
            raise ValueError(f"unexpected character {char!r} in YARA hex string")
        position += 1
    return reader.finish()
