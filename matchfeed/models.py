# models.py — records exchanged between the store, the matcher and the like reconciler
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

ANY = "any"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class RelationshipStatus(str, Enum):
    SINGLE = "single"
    IN_RELATIONSHIP = "in_relationship"
    MARRIED = "married"
    COMPLICATED = "complicated"


class MediaType(str, Enum):
    INTRO_VIDEO = "intro_video"
    PHOTO = "photo"


@dataclass
class Profile:
    id: str
    first_name: str = ""
    last_name: str = ""
    bio: str = ""
    country: str = ""
    city: str = ""
    gender: Optional[str] = None
    dateofbirth: Optional[str] = None
    relationshipstatus: Optional[str] = None
    avatar_url: Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip() or "Unknown"


@dataclass
class Preferences:
    user_id: str
    looking_for_gender: str = ANY
    looking_for_relationship_status: str = ANY
    distance_km: int = 100
    age_min: Optional[int] = 18
    age_max: Optional[int] = 99
    height_min_cm: Optional[int] = None
    height_max_cm: Optional[int] = None


@dataclass
class MediaAsset:
    user_id: str
    media_type: str
    media_url: str
    display_order: Optional[int] = None
    id: Optional[int] = None


@dataclass
class LikeRecord:
    liker_id: str
    liked_id: str
    created_at: datetime
    id: Optional[int] = None


@dataclass
class MatchRecord:
    user1_id: str
    user2_id: str
    created_at: datetime
    id: Optional[int] = None

    def involves(self, a: str, b: str) -> bool:
        return {self.user1_id, self.user2_id} == {a, b}


@dataclass
class Candidate:
    """A profile surfaced in the swipe feed, with its display enrichment."""
    id: str
    first_name: str
    last_name: str
    bio: str
    city: str
    country: str
    gender: str
    dateofbirth: str
    relationshipstatus: str
    age: int
    media_url: Optional[str]
    media_type: Optional[str]
    distance_km: int = 0
    interests: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class LikeSummary:
    user_id: str
    name: str
    avatar_url: Optional[str]
    liked_at: datetime
    # profile card, filled for outgoing likes
    bio: str = ""
    city: str = ""
    country: str = ""
    media_url: Optional[str] = None
    media_type: Optional[str] = None
    interests: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["liked_at"] = self.liked_at.isoformat()
        return d


@dataclass
class LikeOutcome:
    """
    Result of a like action.

    matched        -- a mutual match exists for the pair after this call
    duplicate      -- the like was already on record; nothing new was inserted
    match_created  -- this call is the one that created the MatchRecord
    """
    matched: bool
    duplicate: bool = False
    like: Optional[LikeRecord] = None
    match: Optional[MatchRecord] = None
    match_created: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matched": self.matched,
            "duplicate": self.duplicate,
            "match_created": self.match_created,
            "like": _record_dict(self.like),
            "match": _record_dict(self.match),
        }


def _record_dict(rec) -> Optional[Dict[str, Any]]:
    if rec is None:
        return None
    d = asdict(rec)
    d["created_at"] = rec.created_at.isoformat()
    return d


def parse_dob(value) -> Optional[date]:
    """Date of birth as a date, or None when missing or unparseable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None
