from matchfeed.media_store import primary_photo, public_url, representative_media
from matchfeed.models import MediaAsset


def test_public_url_joins_base_and_bucket():
    assert public_url("u1/photo_1.jpg", base="https://cdn.example/", bucket="/user-videos/") == \
        "https://cdn.example/user-videos/u1/photo_1.jpg"


def test_public_url_passthrough_and_empty():
    assert public_url("https://x.example/a.jpg") == "https://x.example/a.jpg"
    assert public_url("") is None
    assert public_url(None) is None


def test_representative_media_prefers_video_then_lowest_photo():
    photo2 = MediaAsset(user_id="u", media_type="photo", media_url="p2", display_order=2, id=1)
    photo1 = MediaAsset(user_id="u", media_type="photo", media_url="p1", display_order=1, id=2)
    video = MediaAsset(user_id="u", media_type="intro_video", media_url="v", id=3)

    assert representative_media([photo2, photo1, video]) is video
    assert representative_media([photo2, photo1]) is photo1
    assert primary_photo([video, photo2]) is photo2
    assert representative_media([]) is None
