# media_store.py — public URLs for stored media paths + representative asset selection
from typing import Iterable, Optional

from . import config
from .models import MediaAsset, MediaType


def public_url(path: Optional[str], *, base: Optional[str] = None, bucket: Optional[str] = None) -> Optional[str]:
    """Object-storage path -> public URL. Absolute URLs pass through untouched."""
    if not path:
        return None
    if path.startswith(("http://", "https://")):
        return path
    base = (base if base is not None else config.MEDIA_BASE_URL).rstrip("/")
    bucket = (bucket if bucket is not None else config.MEDIA_BUCKET).strip("/")
    return f"{base}/{bucket}/{path.lstrip('/')}"


def _order_key(m: MediaAsset):
    return (m.display_order is None, m.display_order or 0, m.id or 0)


def primary_photo(media: Iterable[MediaAsset]) -> Optional[MediaAsset]:
    photos = [m for m in media if m.media_type == MediaType.PHOTO.value and m.media_url]
    return min(photos, key=_order_key) if photos else None


def representative_media(media: Iterable[MediaAsset]) -> Optional[MediaAsset]:
    """Intro video when there is one, else the lowest-order photo, else None."""
    media = list(media)
    for m in media:
        if m.media_type == MediaType.INTRO_VIDEO.value and m.media_url:
            return m
    return primary_photo(media)
