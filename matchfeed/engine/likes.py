"""
engine/likes.py — directional likes, mutual-match detection and the likes/matches views.
  record_like(liker, liked)  -> LikeOutcome
  reconcile(liker, liked)    -> LikeOutcome (re-run the match check only)
  list_incoming_likes(viewer), list_outgoing_likes(viewer), list_mutual_matches(viewer)
The like insert is idempotent on (liker, liked) and the match insert is insert-if-absent on the
unordered pair, so a repeated or racing call converges on one like row and one match row.
"""
import asyncio, logging
from typing import Dict, List

from .. import config
from ..errors import InvalidLikeError, LikeWriteError, LikesLookupError, ReconcileError
from ..media_store import primary_photo, public_url, representative_media
from ..models import LikeOutcome, LikeSummary
from .database import StoragePort

log = logging.getLogger(__name__)


class LikeReconciler:
    def __init__(self, store: StoragePort):
        self.store = store

    async def record_like(self, liker_id: str, liked_id: str) -> LikeOutcome:
        if liker_id == liked_id:
            raise InvalidLikeError("cannot like yourself")
        try:
            like = await self.store.insert_like(liker_id, liked_id)
        except Exception as e:
            log.error("like insert failed %s -> %s: %s", liker_id, liked_id, e)
            raise LikeWriteError(f"could not record like {liker_id} -> {liked_id}") from e

        duplicate = like is None
        if duplicate:
            log.info("like %s -> %s already on record", liker_id, liked_id)
        try:
            outcome = await self._check_reciprocal(liker_id, liked_id)
        except Exception as e:
            log.error("match check failed after like %s -> %s: %s", liker_id, liked_id, e)
            raise ReconcileError(liker_id, liked_id, like=like) from e
        outcome.duplicate = duplicate
        outcome.like = like
        return outcome

    async def reconcile(self, liker_id: str, liked_id: str) -> LikeOutcome:
        try:
            return await self._check_reciprocal(liker_id, liked_id)
        except Exception as e:
            raise ReconcileError(liker_id, liked_id) from e

    async def _check_reciprocal(self, liker_id: str, liked_id: str) -> LikeOutcome:
        reverse = await self.store.find_like(liked_id, liker_id)
        if reverse is None:
            return LikeOutcome(matched=False)
        match, created = await self.store.insert_match(liker_id, liked_id)
        if created:
            log.info("match created %s <-> %s", liker_id, liked_id)
        return LikeOutcome(matched=True, match=match, match_created=created)

    # --- read views ---

    async def list_incoming_likes(self, viewer_id: str) -> List[LikeSummary]:
        try:
            likes = await self.store.list_likes_to(viewer_id)
        except Exception as e:
            raise LikesLookupError(f"could not load likes to {viewer_id}") from e
        return await self._summaries([(l.liker_id, l) for l in likes])

    async def list_outgoing_likes(self, viewer_id: str) -> List[LikeSummary]:
        """Profiles the viewer liked, newest first, each with its full card."""
        try:
            likes = await self.store.list_likes_from(viewer_id)
        except Exception as e:
            raise LikesLookupError(f"could not load likes from {viewer_id}") from e
        return await self._summaries([(l.liked_id, l) for l in likes], card=True)

    async def list_mutual_matches(self, viewer_id: str) -> List[LikeSummary]:
        try:
            mine, theirs = await asyncio.gather(
                self.store.list_likes_from(viewer_id),
                self.store.list_likes_to(viewer_id),
            )
        except Exception as e:
            raise LikesLookupError(f"could not load likes for {viewer_id}") from e
        liked_by_me = {l.liked_id for l in mine}
        mutual = [l for l in theirs if l.liker_id in liked_by_me]
        return await self._summaries([(l.liker_id, l) for l in mutual])

    async def _summaries(self, rows, card: bool = False) -> List[LikeSummary]:
        # rows keep the store's newest-first order
        ids = list(dict.fromkeys(uid for uid, _ in rows))
        looked_up = await asyncio.gather(*(self._person(uid, card) for uid in ids))
        people: Dict[str, dict] = dict(zip(ids, looked_up))
        out = []
        for uid, like in rows:
            fields = dict(people[uid])
            if "interests" in fields:
                fields["interests"] = list(fields["interests"])
            out.append(LikeSummary(user_id=uid, liked_at=like.created_at, **fields))
        return out

    async def _person(self, user_id: str, card: bool = False) -> dict:
        person = {"name": "Unknown", "avatar_url": None}
        profile, media = None, None
        try:
            profile = await self.store.get_profile(user_id)
            if profile is not None:
                person["name"] = profile.display_name
        except Exception:
            log.warning("profile lookup failed for %s", user_id, exc_info=True)
        try:
            media = await self.store.list_media(user_id)
            photo = primary_photo(media)
            person["avatar_url"] = public_url(photo.media_url) if photo else None
        except Exception:
            log.warning("media lookup failed for %s", user_id, exc_info=True)
        if not card:
            return person

        if profile is not None:
            person.update(bio=profile.bio or "", city=profile.city or "Unknown", country=profile.country or "")
        asset = representative_media(media or [])
        if asset is not None:
            person.update(media_url=public_url(asset.media_url), media_type=asset.media_type)
        try:
            interests = await self.store.list_interests(user_id, config.INTEREST_DISPLAY_LIMIT)
            person["interests"] = list(interests)[:config.INTEREST_DISPLAY_LIMIT]
        except Exception:
            log.warning("interests lookup failed for %s", user_id, exc_info=True)
        return person
