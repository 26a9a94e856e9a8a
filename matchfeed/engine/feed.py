# engine/feed.py — per-session swipe feed + periodic likes/matches polling
import asyncio, inspect, logging, time
from typing import Callable, List, Optional

from .. import config
from ..models import Candidate, LikeOutcome
from .database import StoragePort
from .likes import LikeReconciler
from .match_engine import GenderPolicy, find_candidates
from .ranking import RankingStrategy

log = logging.getLogger(__name__)


class SwipeSession:
    """
    One viewer's feed. The candidate list is cached for `ttl` seconds on this object only;
    every load takes a request token and a response overtaken by a newer load is dropped.
    """

    def __init__(self, store: StoragePort, viewer_id: str, *, ttl: Optional[float] = None,
                 clock: Callable[[], float] = time.monotonic,
                 policy: Optional[GenderPolicy] = None,
                 ranking: Optional[RankingStrategy] = None,
                 reconciler: Optional[LikeReconciler] = None):
        self.store = store
        self.viewer_id = viewer_id
        self.ttl = config.CANDIDATE_CACHE_TTL if ttl is None else ttl
        self.clock = clock
        self.policy = policy
        self.ranking = ranking
        self.reconciler = reconciler or LikeReconciler(store)
        self.candidates: List[Candidate] = []
        self.index = 0
        self._token = 0
        self._loaded_at: Optional[float] = None
        self._liking = False

    def is_fresh(self) -> bool:
        return self._loaded_at is not None and (self.clock() - self._loaded_at) < self.ttl

    def invalidate(self) -> None:
        self._loaded_at = None

    async def load(self, force: bool = False) -> List[Candidate]:
        if not force and self.is_fresh():
            return self.candidates
        self._token += 1
        token = self._token
        result = await find_candidates(self.store, self.viewer_id, policy=self.policy, ranking=self.ranking)
        if token != self._token:
            log.info("dropping stale feed response for %s (token %d < %d)", self.viewer_id, token, self._token)
            return self.candidates
        self.candidates = result
        self.index = 0
        self._loaded_at = self.clock()
        return result

    @property
    def current(self) -> Optional[Candidate]:
        if self.index < len(self.candidates):
            return self.candidates[self.index]
        return None

    def skip(self) -> Optional[Candidate]:
        if self.current is not None:
            self.index += 1
        return self.current

    async def like(self) -> Optional[LikeOutcome]:
        """
        Like the candidate on screen. The feed advances only once the like is stored;
        errors propagate with the index unchanged. Returns None if there is nothing to like
        or another like from this session is still in flight.
        """
        cand = self.current
        if cand is None or self._liking:
            return None
        self._liking = True
        try:
            outcome = await self.reconciler.record_like(self.viewer_id, cand.id)
        finally:
            self._liking = False
        if self.current is cand:
            self.index += 1
        return outcome


async def poll_inbox(reconciler: LikeReconciler, viewer_id: str, on_update: Callable, *,
                     interval: Optional[float] = None, stop: Optional[asyncio.Event] = None) -> None:
    """Fetch incoming likes and mutual matches every `interval` seconds until `stop` is set."""
    interval = config.INBOX_POLL_SECONDS if interval is None else interval
    stop = stop or asyncio.Event()
    while not stop.is_set():
        try:
            incoming, matches = await asyncio.gather(
                reconciler.list_incoming_likes(viewer_id),
                reconciler.list_mutual_matches(viewer_id),
            )
            res = on_update(incoming, matches)
            if inspect.isawaitable(res):
                await res
        except Exception:
            logging.exception("inbox poll failed for %s", viewer_id)
        try:
            await asyncio.wait_for(stop.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass
