"""Shorten a pattern until it fits the trim budget.

Trimming is a single reduction loop: while the pattern holds more bytes than
the budget allows, one fragment is removed and its surrounding gap is folded
into the neighbour (see :meth:`avsig.pattern.Pattern.without`).  The strategy
only decides *which* fragment goes.

Two rules apply to every strategy:

* the budget has to be reachable: some fragment must fit it on its own.
  The last fitting fragment is never removed, preferring one of at least
  ``min_piece_length`` bytes when there is one.  An unreachable budget
  raises :class:`~avsig.errors.TrimExhausted` before anything is removed.
* fragments shorter than ``min_piece_length`` are only removed once no
  fragment at or above the floor is left to remove.

Randomised trimming draws from a :class:`TrimContext` created for the run, so
two runs with the same pattern and variant always agree and concurrent runs
never share generator state.
"""

from __future__ import annotations

import logging
import random
from typing import Callable, List, Optional, Sequence

from .errors import BudgetExceeded, TrimExhausted
from .pattern import UNBOUNDED, Pattern
from .policy import DEFAULT_MIN_PIECE_LENGTH, GenerationPolicy, TrimAlgorithm


logger = logging.getLogger(__name__)


ReweightHook = Callable[[Pattern], Optional[Sequence[int]]]


class TrimContext:
    """Deterministic pseudo-random source for one trimming run."""

    def __init__(self, content_hash: bytes, variant: int) -> None:
        seed_material = content_hash + variant.to_bytes(8, "little", signed=True)
        self.seed = int.from_bytes(seed_material, "big")
        self._random = random.Random(self.seed)

    @classmethod
    def for_pattern(cls, pattern: Pattern, variant: int = 0) -> "TrimContext":
        return cls(pattern.content_hash(), variant)

    def choose(self, count: int) -> int:
        return self._random.randrange(count)


class Trimmer:
    """Apply one :class:`~avsig.policy.TrimAlgorithm` to a pattern."""

    def __init__(
        self,
        algorithm: TrimAlgorithm = TrimAlgorithm.TRIM_NONE,
        *,
        budget: int = UNBOUNDED,
        min_piece_length: int = DEFAULT_MIN_PIECE_LENGTH,
        variant: int = 0,
        reweight: Optional[ReweightHook] = None,
    ) -> None:
        self.algorithm = TrimAlgorithm(algorithm)
        self.budget = budget
        self.min_piece_length = min_piece_length
        self.variant = variant
        self.reweight = reweight

    @classmethod
    def from_policy(
        cls, policy: GenerationPolicy, *, reweight: Optional[ReweightHook] = None
    ) -> "Trimmer":
        return cls(
            policy.trim_algorithm,
            budget=policy.trim_length,
            min_piece_length=policy.min_piece_length,
            variant=policy.variant,
            reweight=reweight,
        )

    def trim(self, pattern: Pattern) -> Pattern:
        if self.budget == UNBOUNDED or pattern.total_length <= self.budget:
            return pattern
        if self.algorithm is TrimAlgorithm.TRIM_NONE:
            raise BudgetExceeded(
                f"pattern holds {pattern.total_length} byte(s), budget is {self.budget} "
                "and trimming is disabled",
                context="trim_length",
                pattern=pattern,
            )
        self._check_reachable(pattern)

        if self.algorithm is TrimAlgorithm.TRIM_WEIGHTED:
            removal_order = sorted(
                range(len(pattern)),
                key=lambda index: (pattern[index].weight, index),
                reverse=True,
            )
            trimmed = self._trim_in_order(pattern, removal_order)
        else:
            context = TrimContext.for_pattern(pattern, self.variant)
            trimmed = self._trim_stepwise(pattern, context)

        logger.debug(
            "%s: %d -> %d fragment(s), %d -> %d byte(s)",
            self.algorithm.name,
            len(pattern),
            len(trimmed),
            pattern.total_length,
            trimmed.total_length,
        )
        return trimmed

    # ------------------------------------------------------------------
    # candidate bookkeeping
    # ------------------------------------------------------------------
    def _check_reachable(self, pattern: Pattern) -> None:
        if not any(len(fragment) <= self.budget for fragment in pattern):
            raise TrimExhausted(
                f"every fragment is longer than the budget of {self.budget} byte(s)",
                context="trim_length",
                pattern=pattern,
            )

    def _candidates(self, lengths: Sequence[int]) -> List[int]:
        """Return the positions that may be removed next, floor-respecting first."""

        fitting = [index for index, length in enumerate(lengths) if length <= self.budget]
        anchors = [index for index in fitting if lengths[index] >= self.min_piece_length]
        if not anchors:
            anchors = fitting
        protected = anchors[0] if len(anchors) == 1 else None
        above = [
            index
            for index, length in enumerate(lengths)
            if length >= self.min_piece_length and index != protected
        ]
        if above:
            return above
        return [
            index
            for index, length in enumerate(lengths)
            if length < self.min_piece_length and index != protected
        ]

    # ------------------------------------------------------------------
    # strategies
    # ------------------------------------------------------------------
    def _trim_stepwise(self, pattern: Pattern, context: TrimContext) -> Pattern:
        positions = list(range(len(pattern)))
        weights = [fragment.weight for fragment in pattern]
        while pattern.total_length > self.budget:
            candidates = self._candidates([len(fragment) for fragment in pattern])
            if not candidates:
                raise TrimExhausted(
                    "no removable fragment left", context="trim_length", pattern=pattern
                )
            victim = self._pick(candidates, weights, context)
            logger.debug(
                "%s: removing fragment %d (%d byte(s), weight %d)",
                self.algorithm.name,
                positions[victim],
                len(pattern[victim]),
                weights[victim],
            )
            pattern = pattern.without(victim)
            del positions[victim]
            del weights[victim]
            if self.algorithm is TrimAlgorithm.TRIM_WEIGHTED_GREEDY and self.reweight is not None:
                updated = self.reweight(pattern)
                if updated is not None:
                    weights = list(updated)
                    if len(weights) != len(pattern):
                        raise ValueError(
                            f"reweight hook returned {len(weights)} weight(s) "
                            f"for {len(pattern)} fragment(s)"
                        )
        return pattern

    def _pick(self, candidates: Sequence[int], weights: Sequence[int], context: TrimContext) -> int:
        algorithm = self.algorithm
        if algorithm is TrimAlgorithm.TRIM_LAST:
            return candidates[-1]
        if algorithm is TrimAlgorithm.TRIM_FIRST:
            return candidates[0]
        if algorithm is TrimAlgorithm.TRIM_RANDOM:
            return candidates[context.choose(len(candidates))]
        if algorithm is TrimAlgorithm.TRIM_WEIGHTED_GREEDY:
            # Highest weight goes first; on ties the later position goes.
            return max(candidates, key=lambda index: (weights[index], index))
        raise ValueError(f"{algorithm.name} is not a stepwise strategy")

    def _trim_in_order(self, pattern: Pattern, removal_order: Sequence[int]) -> Pattern:
        """Remove fragments following a precomputed order of original positions."""

        positions = list(range(len(pattern)))
        queue = list(removal_order)
        while pattern.total_length > self.budget:
            candidates = set(self._candidates([len(fragment) for fragment in pattern]))
            victim_position = next(
                (position for position in queue if positions.index(position) in candidates),
                None,
            )
            if victim_position is None:
                raise TrimExhausted(
                    "no removable fragment left", context="trim_length", pattern=pattern
                )
            queue.remove(victim_position)
            victim = positions.index(victim_position)
            logger.debug(
                "%s: removing fragment %d (%d byte(s), weight %d)",
                self.algorithm.name,
                victim_position,
                len(pattern[victim]),
                pattern[victim].weight,
            )
            pattern = pattern.without(victim)
            del positions[victim]
        return pattern


def trim_pattern(
    pattern: Pattern, policy: GenerationPolicy, *, reweight: Optional[ReweightHook] = None
) -> Pattern:
    return Trimmer.from_policy(policy, reweight=reweight).trim(pattern)
