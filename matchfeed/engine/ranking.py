# engine/ranking.py — proximity signal and feed ordering, kept apart from the filters
from __future__ import annotations

import random
from typing import List, Optional, Protocol, TypeVar

from ..models import Preferences, Profile

T = TypeVar("T")


class RankingStrategy(Protocol):
    def distance_for(self, preferences: Preferences, profile: Profile) -> int: ...
    def order(self, candidates: List[T]) -> List[T]: ...


class RandomRanking:
    """
    Placeholder ranking: no coordinates are modelled, so distance is a uniform integer in
    [1, distance_km] and the feed order is a fresh uniform shuffle on every call.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def distance_for(self, preferences: Preferences, profile: Profile) -> int:
        upper = max(1, int(preferences.distance_km or 1))
        return self.rng.randint(1, upper)

    def order(self, candidates: List[T]) -> List[T]:
        shuffled = list(candidates)
        self.rng.shuffle(shuffled)
        return shuffled
