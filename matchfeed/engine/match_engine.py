"""
engine/match_engine.py — candidate feed for a viewer.
  find_candidates(store, viewer_id) -> [Candidate]
Steps: viewer profile + preferences -> pool without the viewer, filtered by gender/relationship
-> age window -> representative media (no media = dropped) -> interests -> distance -> order.
Notes:
  * Missing profile or preferences gives an empty feed, not an error.
  * Media/interest lookups are per candidate and never abort the whole feed.
"""
import asyncio, logging
from datetime import date
from enum import Enum
from typing import Callable, List, Optional

from .. import config
from ..errors import CandidateSearchError
from ..media_store import public_url, representative_media
from ..models import ANY, Candidate, Gender, Preferences, Profile, parse_dob
from .database import StoragePort
from .ranking import RandomRanking, RankingStrategy

log = logging.getLogger(__name__)


class GenderPolicy(str, Enum):
    PREFERENCE = "preference"  # looking_for_gender from user_preferences
    OPPOSITE = "opposite"      # male <-> female from the viewer's own profile


OPPOSITE_GENDER = {Gender.MALE.value: Gender.FEMALE.value, Gender.FEMALE.value: Gender.MALE.value}

Filter = Callable[[Profile], bool]


def _wanted(value: Optional[str]) -> Optional[str]:
    value = (value or ANY).strip().lower()
    return None if value == ANY else value


def target_gender(policy: GenderPolicy, viewer: Profile, prefs: Preferences) -> Optional[str]:
    """Gender to filter on, or None for no gender filter."""
    if policy is GenderPolicy.OPPOSITE:
        return OPPOSITE_GENDER.get((viewer.gender or "").lower())
    return _wanted(prefs.looking_for_gender)


def calculate_age(dob: date, today: date) -> int:
    age = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        age -= 1
    return age


def age_range_filter(age_min: Optional[int], age_max: Optional[int], today: date) -> Filter:
    # a missing bound leaves that side of the window open
    lo = 0 if age_min is None else age_min
    hi = 200 if age_max is None else age_max

    def _f(cand: Profile) -> bool:
        dob = parse_dob(cand.dateofbirth)
        if dob is None:
            return False
        return lo <= calculate_age(dob, today) <= hi
    return _f


async def _enrich(store: StoragePort, cand: Profile, prefs: Preferences, ranking: RankingStrategy,
                  today: date) -> Optional[Candidate]:
    try:
        media = await store.list_media(cand.id)
    except Exception:
        log.warning("media lookup failed for %s, dropping candidate", cand.id, exc_info=True)
        return None
    asset = representative_media(media)
    if asset is None:
        return None
    try:
        interests = await store.list_interests(cand.id, config.INTEREST_DISPLAY_LIMIT)
    except Exception:
        log.warning("interests lookup failed for %s", cand.id, exc_info=True)
        interests = []
    return Candidate(
        id=cand.id,
        first_name=cand.first_name or "Unknown",
        last_name=cand.last_name or "",
        bio=cand.bio or "",
        city=cand.city or "Unknown",
        country=cand.country or "",
        gender=cand.gender or "",
        dateofbirth=cand.dateofbirth or "",
        relationshipstatus=cand.relationshipstatus or "",
        age=calculate_age(parse_dob(cand.dateofbirth), today),
        media_url=public_url(asset.media_url),
        media_type=asset.media_type,
        distance_km=ranking.distance_for(prefs, cand),
        interests=list(interests)[:config.INTEREST_DISPLAY_LIMIT],
    )


async def find_candidates(store: StoragePort, viewer_id: str, *,
                          policy: Optional[GenderPolicy] = None,
                          ranking: Optional[RankingStrategy] = None,
                          today: Optional[date] = None) -> List[Candidate]:
    policy = policy or GenderPolicy(config.GENDER_FILTER_POLICY)
    ranking = ranking or RandomRanking()
    today = today or date.today()

    try:
        viewer = await store.get_profile(viewer_id)
        if viewer is None:
            log.warning("no profile for viewer %s, empty feed", viewer_id)
            return []
        prefs = await store.get_preferences(viewer_id)
        if prefs is None:
            log.warning("no preferences for viewer %s, empty feed", viewer_id)
            return []
        gender = target_gender(policy, viewer, prefs)
        relationship = _wanted(prefs.looking_for_relationship_status)
        pool = await store.list_profiles(viewer_id, gender=gender, relationship_status=relationship)
    except Exception as e:
        raise CandidateSearchError(f"candidate search failed for {viewer_id}") from e

    log.info("feed filters viewer=%s policy=%s gender=%s relationship=%s pool=%d",
             viewer_id, policy.value, gender or ANY, relationship or ANY, len(pool))

    in_age = age_range_filter(prefs.age_min, prefs.age_max, today)
    pool = [c for c in pool if c.id != viewer_id and in_age(c)]
    enriched = await asyncio.gather(*(_enrich(store, c, prefs, ranking, today) for c in pool))
    return ranking.order([c for c in enriched if c is not None])
