"""Encoded signatures returned by the assembler."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Iterable, Iterator, List, Sequence, Tuple, Union

from .pattern import UNBOUNDED, Fragment, Pattern, Qualifier
from .policy import GenerationPolicy
from .registry import PIECE_FIELDS, SIGNATURE_FIELDS


class SignatureType(IntEnum):
    INVALID = -1
    RAW = 0
    CLAMAV = 1
    YARA = 2

    @classmethod
    def parse(cls, value: Union[str, int, "SignatureType"]) -> "SignatureType":
        if isinstance(value, SignatureType):
            return value
        if isinstance(value, str):
            try:
                return cls[value.upper()]
            except KeyError:
                raise ValueError(f"unknown signature type {value!r}") from None
        return cls(value)


@dataclass(frozen=True)
class RawSignature:
    """Engine independent form: the trimmed fragments plus a text rendering."""

    pieces: Tuple[Fragment, ...]
    text: str

    @property
    def pattern(self) -> Pattern:
        return Pattern(self.pieces)


@dataclass(frozen=True)
class ClamAvSignature:
    data: str


@dataclass(frozen=True)
class YaraSignature:
    data: str


SignatureBody = Union[RawSignature, ClamAvSignature, YaraSignature]


def body_type(body: SignatureBody) -> SignatureType:
    if isinstance(body, RawSignature):
        return SignatureType.RAW
    if isinstance(body, ClamAvSignature):
        return SignatureType.CLAMAV
    if isinstance(body, YaraSignature):
        return SignatureType.YARA
    raise TypeError(f"unsupported signature body type: {type(body)!r}")


@dataclass(frozen=True)
class EncodedSignature:
    """One encoded signature paired with the policy that requested it."""

    body: SignatureBody
    definition: GenerationPolicy

    def __post_init__(self) -> None:
        body_type(self.body)

    @property
    def signature_type(self) -> SignatureType:
        return body_type(self.body)

    @property
    def text(self) -> str:
        body = self.body
        if isinstance(body, RawSignature):
            return body.text
        return body.data

    def to_dict(self, *, by_number: bool = False) -> Dict[Any, Any]:
        """Serialise into the stored record layout.

        Exactly one of ``raw_signature``, ``clam_av_signature`` and
        ``yara_signature`` is present, next to the ``definition``.
        """

        body = self.body
        if isinstance(body, RawSignature):
            name = "raw_signature"
            value: Dict[Any, Any] = {
                "piece": [serialize_fragment(piece, by_number=by_number) for piece in body.pieces],
                "text": body.text,
            }
        elif isinstance(body, ClamAvSignature):
            name = "clam_av_signature"
            value = {"data": body.data}
        elif isinstance(body, YaraSignature):
            name = "yara_signature"
            value = {"data": body.data}
        else:
            raise TypeError(f"unsupported signature body type: {type(body)!r}")

        def key(field_name: str) -> Any:
            return SIGNATURE_FIELDS.number(field_name) if by_number else field_name

        return {
            key(name): value,
            key("definition"): self.definition.to_dict(by_number=by_number),
        }


class SignatureBatch(Sequence[EncodedSignature]):
    """Ordered collection of independently generated signatures."""

    def __init__(self, signatures: Iterable[EncodedSignature] = ()) -> None:
        self._signatures: List[EncodedSignature] = list(signatures)

    def append(self, signature: EncodedSignature) -> None:
        self._signatures.append(signature)

    def __len__(self) -> int:
        return len(self._signatures)

    def __getitem__(self, index):  # type: ignore[override]
        return self._signatures[index]

    def __iter__(self) -> Iterator[EncodedSignature]:
        return iter(self._signatures)

    def of_type(self, signature_type: SignatureType) -> List[EncodedSignature]:
        return [entry for entry in self._signatures if entry.signature_type is signature_type]

    def to_dict(self, *, by_number: bool = False) -> Dict[str, Any]:
        return {"signature": [entry.to_dict(by_number=by_number) for entry in self._signatures]}


def serialize_fragment(fragment: Fragment, *, by_number: bool = False) -> Dict[Any, Any]:
    payload = {
        "data": fragment.data.hex(),
        "min_qualifier": fragment.qualifier.min,
        "max_qualifier": fragment.qualifier.max,
        "weight": fragment.weight,
        "disassembly": list(fragment.disassembly),
        "masked_nibbles": sorted(fragment.masked_nibbles),
    }
    if by_number:
        return {PIECE_FIELDS.number(name): value for name, value in payload.items()}
    return payload


def deserialize_fragment(payload: Dict[Any, Any]) -> Fragment:
    values = {}
    for key, value in payload.items():
        name = PIECE_FIELDS.name(int(key)) if str(key).isdigit() else key
        values[name] = value
    return Fragment(
        bytes.fromhex(values.get("data", "")),
        Qualifier(
            int(values.get("min_qualifier", 0)),
            int(values.get("max_qualifier", UNBOUNDED)),
        ),
        int(values.get("weight", 0)),
        tuple(values.get("disassembly", ())),
        frozenset(values.get("masked_nibbles", ())),
    )
