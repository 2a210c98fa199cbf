"""Public package exports for the antivirus signature generator."""

from .assembler import SignatureAssembler
from .builder import PatternBuilder
from .errors import (
    BudgetExceeded,
    InsufficientData,
    InvalidPolicy,
    SignatureError,
    TrimExhausted,
    UnsupportedConstruct,
)
from .pattern import UNBOUNDED, Fragment, Pattern, Qualifier
from .policy import FunctionFilterMode, GenerationPolicy, ItemSelection, MetaEntry, TrimAlgorithm
from .regions import ByteRegion, ItemRegions, MatchSnapshot, RegionKind
from .selector import ItemSelector, Selection
from .signature import EncodedSignature, SignatureBatch, SignatureType
from .trimmer import TrimContext, Trimmer

__all__ = [
    "UNBOUNDED",
    "BudgetExceeded",
    "ByteRegion",
    "EncodedSignature",
    "Fragment",
    "FunctionFilterMode",
    "GenerationPolicy",
    "InsufficientData",
    "InvalidPolicy",
    "ItemRegions",
    "ItemSelection",
    "ItemSelector",
    "MatchSnapshot",
    "MetaEntry",
    "Pattern",
    "PatternBuilder",
    "Qualifier",
    "RegionKind",
    "Selection",
    "SignatureAssembler",
    "SignatureBatch",
    "SignatureError",
    "SignatureType",
    "TrimAlgorithm",
    "TrimContext",
    "TrimExhausted",
    "Trimmer",
    "UnsupportedConstruct",
]
