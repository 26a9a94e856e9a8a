# errors.py — failures the matcher and the like reconciler surface to callers
from typing import Optional


class MatchfeedError(Exception):
    pass


class CandidateSearchError(MatchfeedError):
    """Loading the viewer's own rows or the candidate pool failed."""


class InvalidLikeError(MatchfeedError, ValueError):
    pass


class LikeWriteError(MatchfeedError):
    """The like insert failed; nothing was recorded."""


class ReconcileError(MatchfeedError):
    """
    The like is on record but the reciprocity check or the match write failed.
    Retry with LikeReconciler.reconcile(liker_id, liked_id); do not re-insert the like.
    """

    def __init__(self, liker_id: str, liked_id: str, like=None, message: Optional[str] = None):
        self.liker_id = liker_id
        self.liked_id = liked_id
        self.like = like
        super().__init__(message or f"like {liker_id} -> {liked_id} recorded, match check failed")


class LikesLookupError(MatchfeedError):
    pass
