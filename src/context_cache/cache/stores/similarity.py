"""Fuzzy store matching on feature-vector similarity."""

from __future__ import annotations

import logging

from context_cache.cache.base import CacheEntry, CacheError, CacheStore, StoreName
from context_cache.cache.features import FeatureVector
from context_cache.cache.scorer import SimilarityScorer
from context_cache.errors import MalformedEntryError, log_exception

logger = logging.getLogger(__name__)


class SimilarityLookup:
    """Outcome of a similarity scan.

    Attributes:
        entry: Best entry at or above the threshold, or None.
        score: Score of ``entry``, or the best score seen when there is no hit.
        candidates: Entries considered.
        disqualified: Entries rejected by the hard checks.
    """

    __slots__ = ("entry", "score", "candidates", "disqualified")

    def __init__(
        self,
        entry: CacheEntry | None,
        score: float | None,
        candidates: int,
        disqualified: int,
    ) -> None:
        self.entry = entry
        self.score = score
        self.candidates = candidates
        self.disqualified = disqualified

    @property
    def hit(self) -> bool:
        return self.entry is not None

    def __repr__(self) -> str:
        return (
            f"SimilarityLookup(hit={self.hit}, score={self.score}, "
            f"candidates={self.candidates}, disqualified={self.disqualified})"
        )


class SimilarityStore(CacheStore):
    """Store returning the best-scoring entry above an acceptance threshold.

    Lookups scan a snapshot of the entries in two stages: first the cheap
    hard-disqualification checks (distance and date bounds), then full
    weighted scoring of the survivors. The maximum score wins; ties go to
    the most recently created entry. A candidate whose stored vector cannot
    be scored is logged and dropped.

    Example:
        >>> store = SimilarityStore(scorer=SimilarityScorer(), threshold=0.90)
        >>> store.insert(entry)
        >>> result = store.lookup(query_vector)
        >>> if result.hit:
        ...     print(result.entry.payload, result.score)
    """

    name = StoreName.SIMILARITY

    def __init__(
        self,
        scorer: SimilarityScorer | None = None,
        capacity: int = 30,
        threshold: float = 0.90,
    ) -> None:
        super().__init__(capacity)
        if not 0.0 < threshold <= 1.0:
            raise ValueError(f"threshold must be in (0.0, 1.0], got {threshold}")
        self.scorer = scorer or SimilarityScorer()
        self.threshold = threshold

    def insert(self, entry: CacheEntry) -> list[CacheEntry]:
        if entry.vector is None:
            raise CacheError(f"Similarity entry {entry.key!r} has no feature vector")
        return super().insert(entry)

    def lookup(self, vector: FeatureVector) -> SimilarityLookup:
        """Find the best entry for ``vector``.

        Args:
            vector: Feature vector of the incoming request.

        Returns:
            A :class:`SimilarityLookup`; ``entry`` is None on a miss.
        """
        snapshot = self._snapshot
        survivors: list[CacheEntry] = []
        disqualified = 0

        for entry in snapshot:
            try:
                if self.scorer.disqualifies(vector, entry.vector) is not None:
                    disqualified += 1
                    continue
            except (TypeError, ValueError, AttributeError) as e:
                self._discard(entry, e)
                continue
            survivors.append(entry)

        best: CacheEntry | None = None
        best_score: float | None = None
        for entry in survivors:
            try:
                score = self.scorer.compare(vector, entry.vector, directed=True).score
            except (TypeError, ValueError, AttributeError) as e:
                self._discard(entry, e)
                continue
            if (
                best_score is None
                or score > best_score
                or (score == best_score and entry.created_at > best.created_at)
            ):
                best, best_score = entry, score

        if best is None or best_score < self.threshold:
            self._record_miss()
            return SimilarityLookup(None, best_score, len(snapshot), disqualified)

        self._record_hit(best, best_score)
        return SimilarityLookup(best, best_score, len(snapshot), disqualified)

    def _discard(self, entry: CacheEntry, error: Exception) -> None:
        log_exception(
            logger,
            f"Dropping unscorable similarity entry {entry.key[:50]}",
            MalformedEntryError(str(error), key=entry.key),
            include_traceback=False,
        )
        self._drop(entry)
