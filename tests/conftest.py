import asyncio
from datetime import date

import pytest

from matchfeed.engine import database
from matchfeed.models import MediaAsset, Preferences, Profile

TODAY = date(2024, 6, 15)


def dob_for_age(age: int) -> str:
    return date(TODAY.year - age, 1, 1).isoformat()


@pytest.fixture
def store(tmp_path):
    backend = asyncio.run(database.init_db(reset=True, sqlite_path=str(tmp_path / "matchfeed.sqlite3")))
    yield backend
    asyncio.run(database.close_db())


@pytest.fixture
def seed(store):
    def _seed(uid, gender="female", dob="1996-03-10", relationship="single", *, photos=1, video=False,
              interests=(), first_name=None, last_name="Tester"):
        async def go():
            await store.save_profile(Profile(id=uid, first_name=first_name or uid.title(), last_name=last_name,
                                             city="Lisbon", country="PT", gender=gender, dateofbirth=dob,
                                             relationshipstatus=relationship))
            for i in range(photos):
                await store.add_media(MediaAsset(user_id=uid, media_type="photo",
                                                 media_url=f"{uid}/photo_{i + 1}.jpg", display_order=i + 1))
            if video:
                await store.add_media(MediaAsset(user_id=uid, media_type="intro_video",
                                                 media_url=f"{uid}/intro_video.mp4"))
            if interests:
                await store.set_user_interests(uid, list(interests))
        asyncio.run(go())
        return uid
    return _seed


@pytest.fixture
def prefs(store):
    def _prefs(uid, **kwargs):
        asyncio.run(store.save_preferences(Preferences(user_id=uid, **kwargs)))
    return _prefs


class FlakyStore:
    """Wraps a store; the named methods raise ConnectionError (optionally only for given first args)."""

    def __init__(self, inner, fail=(), only_for=None):
        self.inner = inner
        self.fail = set(fail)
        self.only_for = set(only_for) if only_for else None
        self.calls = []

    def __getattr__(self, name):
        attr = getattr(self.inner, name)
        if not callable(attr):
            return attr

        async def call(*args, **kwargs):
            self.calls.append(name)
            if name in self.fail and (self.only_for is None or (args and args[0] in self.only_for)):
                raise ConnectionError(f"{name} unavailable")
            return await attr(*args, **kwargs)
        return call


@pytest.fixture
def flaky(store):
    def _flaky(*fail, only_for=None):
        return FlakyStore(store, fail, only_for)
    return _flaky
