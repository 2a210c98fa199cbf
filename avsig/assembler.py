"""Run the complete generation pipeline for one or more policies.

The assembler is the only component that knows the order of the stages::

    policy + snapshot -> ItemSelector -> PatternBuilder -> Trimmer
                      -> SignatureFormatter -> EncodedSignature

Each run is independent and keeps no state between calls, so one assembler
can serve many policies, from several threads if needed.  The first failure
aborts the run; no partially built signature is returned.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional, Tuple, Union

from .builder import PatternBuilder
from .formats import formatter_for
from .pattern import Pattern
from .policy import GenerationPolicy
from .regions import MatchSnapshot
from .selector import ItemSelector
from .signature import EncodedSignature, SignatureBatch, SignatureType
from .trimmer import ReweightHook, Trimmer


logger = logging.getLogger(__name__)


Publisher = Callable[[EncodedSignature], None]
SignatureRequest = Tuple[GenerationPolicy, Union[SignatureType, str, int]]


class SignatureAssembler:
    """Produce :class:`EncodedSignature` records from a matcher snapshot.

    ``publisher`` is called with every finished signature unless the policy
    disables publication.  ``reweight`` is forwarded to the trimmer and only
    consulted by ``TRIM_WEIGHTED_GREEDY``.
    """

    def __init__(
        self,
        snapshot: MatchSnapshot,
        *,
        publisher: Optional[Publisher] = None,
        reweight: Optional[ReweightHook] = None,
    ) -> None:
        self.snapshot = snapshot
        self.publisher = publisher
        self.reweight = reweight

    def build_pattern(self, policy: GenerationPolicy) -> Pattern:
        """Run selection, building and trimming without encoding."""

        policy.validate()
        selection = ItemSelector(self.snapshot).select(policy)
        pattern = PatternBuilder.from_policy(policy).build(selection)
        return Trimmer.from_policy(policy, reweight=self.reweight).trim(pattern)

    def generate(
        self,
        policy: GenerationPolicy,
        signature_type: Union[SignatureType, str, int] = SignatureType.RAW,
    ) -> EncodedSignature:
        formatter = formatter_for(signature_type)
        pattern = self.build_pattern(policy)
        body = formatter.format(pattern, policy)
        signature = EncodedSignature(body, policy)
        logger.info(
            "generated %s signature for %s: %d fragment(s), %d byte(s)",
            signature.signature_type.name,
            policy.detection_name or policy.unique_signature_id or ",".join(policy.item_ids),
            len(pattern),
            pattern.total_length,
        )
        if self.publisher is not None and not policy.disable_publication:
            self.publisher(signature)
        return signature

    def generate_batch(self, requests: Iterable[SignatureRequest]) -> SignatureBatch:
        """Generate one signature per ``(policy, signature_type)`` request, in order."""

        batch = SignatureBatch()
        for policy, signature_type in requests:
            batch.append(self.generate(policy, signature_type))
        return batch


def generate_signature(
    snapshot: MatchSnapshot,
    policy: GenerationPolicy,
    signature_type: Union[SignatureType, str, int] = SignatureType.RAW,
) -> EncodedSignature:
    return SignatureAssembler(snapshot).generate(policy, signature_type)
