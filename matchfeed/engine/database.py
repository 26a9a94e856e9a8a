"""
engine/database.py — Unified backend store for matchfeed
- SQLite by default (aiosqlite, one connection per call)
- Postgres when USE_POSTGRES=1 (asyncpg pool)
Tables (auto-created):
  profiles(id PK, first_name, last_name, bio, country, city, gender, dateofbirth, relationshipstatus, avatar_url)
  user_preferences(user_id PK, looking_for_gender, looking_for_relationship_status, distance_km,
                   age_min, age_max, height_min_cm, height_max_cm)
  user_media(id PK, user_id, media_type, media_url, display_order)
  interests(id PK, name UNIQUE), user_interests(id PK, user_id, interest_id) UNIQUE(user_id, interest_id)
  user_likes(id PK, liker_id, liked_id, created_at)  UNIQUE(liker_id, liked_id)
  matches(id PK, user1_id, user2_id, user_lo, user_hi, created_at)  UNIQUE(user_lo, user_hi)
The two UNIQUE constraints carry the like/match invariants; writers use ON CONFLICT DO NOTHING
so racing clients converge on one row.
"""
import logging, os, time
from datetime import datetime, timezone
from typing import List, Optional, Protocol, Sequence, Tuple

from .. import config
from ..models import LikeRecord, MatchRecord, MediaAsset, Preferences, Profile

log = logging.getLogger(__name__)

SQLITE_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS profiles (
      id                 TEXT PRIMARY KEY,
      first_name         TEXT DEFAULT '',
      last_name          TEXT DEFAULT '',
      bio                TEXT DEFAULT '',
      country            TEXT DEFAULT '',
      city               TEXT DEFAULT '',
      gender             TEXT,
      dateofbirth        TEXT,
      relationshipstatus TEXT,
      avatar_url         TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_preferences (
      user_id                         TEXT PRIMARY KEY,
      looking_for_gender              TEXT DEFAULT 'any',
      looking_for_relationship_status TEXT DEFAULT 'any',
      distance_km                     INTEGER DEFAULT 100,
      age_min                         INTEGER DEFAULT 18,
      age_max                         INTEGER DEFAULT 99,
      height_min_cm                   INTEGER,
      height_max_cm                   INTEGER
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_media (
      id            INTEGER PRIMARY KEY,
      user_id       TEXT NOT NULL,
      media_type    TEXT NOT NULL,
      media_url     TEXT NOT NULL,
      display_order INTEGER
    )
    """,
    "CREATE TABLE IF NOT EXISTS interests (id INTEGER PRIMARY KEY, name TEXT NOT NULL UNIQUE)",
    """
    CREATE TABLE IF NOT EXISTS user_interests (
      id          INTEGER PRIMARY KEY,
      user_id     TEXT NOT NULL,
      interest_id INTEGER NOT NULL,
      UNIQUE (user_id, interest_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_likes (
      id         INTEGER PRIMARY KEY,
      liker_id   TEXT NOT NULL,
      liked_id   TEXT NOT NULL,
      created_at REAL NOT NULL,
      UNIQUE (liker_id, liked_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS matches (
      id         INTEGER PRIMARY KEY,
      user1_id   TEXT NOT NULL,
      user2_id   TEXT NOT NULL,
      user_lo    TEXT NOT NULL,
      user_hi    TEXT NOT NULL,
      created_at REAL NOT NULL,
      UNIQUE (user_lo, user_hi)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_likes_liked ON user_likes(liked_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_media_user ON user_media(user_id, display_order)",
]

PG_SCHEMA = r'''
CREATE TABLE IF NOT EXISTS profiles (
    id TEXT PRIMARY KEY,
    first_name TEXT DEFAULT '',
    last_name TEXT DEFAULT '',
    bio TEXT DEFAULT '',
    country TEXT DEFAULT '',
    city TEXT DEFAULT '',
    gender TEXT,
    dateofbirth TEXT,
    relationshipstatus TEXT,
    avatar_url TEXT
);
CREATE TABLE IF NOT EXISTS user_preferences (
    user_id TEXT PRIMARY KEY,
    looking_for_gender TEXT DEFAULT 'any',
    looking_for_relationship_status TEXT DEFAULT 'any',
    distance_km INT DEFAULT 100,
    age_min INT DEFAULT 18,
    age_max INT DEFAULT 99,
    height_min_cm INT,
    height_max_cm INT
);
CREATE TABLE IF NOT EXISTS user_media (
    id BIGSERIAL PRIMARY KEY,
    user_id TEXT NOT NULL,
    media_type TEXT NOT NULL,
    media_url TEXT NOT NULL,
    display_order INT
);
CREATE TABLE IF NOT EXISTS interests (
    id BIGSERIAL PRIMARY KEY,
    name TEXT NOT NULL UNIQUE
);
CREATE TABLE IF NOT EXISTS user_interests (
    id BIGSERIAL PRIMARY KEY,
    user_id TEXT NOT NULL,
    interest_id BIGINT NOT NULL REFERENCES interests(id),
    UNIQUE (user_id, interest_id)
);
CREATE TABLE IF NOT EXISTS user_likes (
    id BIGSERIAL PRIMARY KEY,
    liker_id TEXT NOT NULL,
    liked_id TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    UNIQUE (liker_id, liked_id)
);
CREATE TABLE IF NOT EXISTS matches (
    id BIGSERIAL PRIMARY KEY,
    user1_id TEXT NOT NULL,
    user2_id TEXT NOT NULL,
    user_lo TEXT NOT NULL,
    user_hi TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    UNIQUE (user_lo, user_hi)
);
CREATE INDEX IF NOT EXISTS idx_likes_liked ON user_likes(liked_id, created_at);
CREATE INDEX IF NOT EXISTS idx_media_user ON user_media(user_id, display_order);
'''

TABLES = ("matches", "user_likes", "user_interests", "interests", "user_media", "user_preferences", "profiles")

PROFILE_COLS = "id, first_name, last_name, bio, country, city, gender, dateofbirth, relationshipstatus, avatar_url"
PREF_COLS = ("user_id, looking_for_gender, looking_for_relationship_status, distance_km, "
             "age_min, age_max, height_min_cm, height_max_cm")


class StoragePort(Protocol):
    async def get_profile(self, user_id: str) -> Optional[Profile]: ...
    async def list_profiles(self, exclude_id: str, *, gender: Optional[str] = None,
                            relationship_status: Optional[str] = None) -> List[Profile]: ...
    async def get_preferences(self, user_id: str) -> Optional[Preferences]: ...
    async def list_media(self, user_id: str) -> List[MediaAsset]: ...
    async def list_interests(self, user_id: str, limit: int) -> List[str]: ...
    async def insert_like(self, liker_id: str, liked_id: str) -> Optional[LikeRecord]: ...
    async def find_like(self, liker_id: str, liked_id: str) -> Optional[LikeRecord]: ...
    async def insert_match(self, a: str, b: str) -> Tuple[MatchRecord, bool]: ...
    async def find_match(self, a: str, b: str) -> Optional[MatchRecord]: ...
    async def list_likes_to(self, user_id: str) -> List[LikeRecord]: ...
    async def list_likes_from(self, user_id: str) -> List[LikeRecord]: ...


_backend = None


async def init_db(reset: bool = False, *, sqlite_path: Optional[str] = None, dsn: Optional[str] = None):
    global _backend
    if dsn or (config.USE_POSTGRES and not sqlite_path):
        _backend = _PG(dsn or config.PG_DSN)
    else:
        _backend = _SQLite(sqlite_path or config.SQLITE_PATH)
    await _backend.init(reset)
    log.info("[db] %s ready", _backend.__class__.__name__.strip("_"))
    return _backend


def get_backend():
    return _backend


async def close_db():
    global _backend
    if _backend is not None:
        await _backend.close()
    _backend = None


def _pair(a: str, b: str) -> Tuple[str, str]:
    return (a, b) if a <= b else (b, a)


def _ts(value) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromtimestamp(float(value), tz=timezone.utc)


def _profile(row) -> Profile:
    d = dict(row)
    for k in ("first_name", "last_name", "bio", "country", "city"):
        d[k] = d.get(k) or ""
    return Profile(**d)


def _preferences(row) -> Preferences:
    return Preferences(**dict(row))


def _media(row) -> MediaAsset:
    return MediaAsset(**dict(row))


def _like(row) -> LikeRecord:
    return LikeRecord(id=row["id"], liker_id=row["liker_id"], liked_id=row["liked_id"], created_at=_ts(row["created_at"]))


def _match(row) -> MatchRecord:
    return MatchRecord(id=row["id"], user1_id=row["user1_id"], user2_id=row["user2_id"], created_at=_ts(row["created_at"]))


# --- Implementations ---
class _SQLite:
    def __init__(self, path: str):
        self.path = path

    def _connect(self):
        import aiosqlite
        return aiosqlite.connect(self.path)

    async def init(self, reset: bool):
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        if reset and os.path.exists(self.path):
            os.remove(self.path)
        async with self._connect() as db:
            for stmt in SQLITE_SCHEMA:
                await db.execute(stmt)
            await db.commit()

    async def close(self):
        return None

    async def _fetchone(self, sql: str, params: Sequence = ()):
        import aiosqlite
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            cur = await db.execute(sql, params)
            return await cur.fetchone()

    async def _fetchall(self, sql: str, params: Sequence = ()):
        import aiosqlite
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            cur = await db.execute(sql, params)
            return await cur.fetchall()

    # profiles
    async def get_profile(self, user_id: str) -> Optional[Profile]:
        row = await self._fetchone(f"SELECT {PROFILE_COLS} FROM profiles WHERE id=?", (user_id,))
        return _profile(row) if row else None

    async def list_profiles(self, exclude_id: str, *, gender=None, relationship_status=None) -> List[Profile]:
        sql = f"SELECT {PROFILE_COLS} FROM profiles WHERE id <> ?"
        params = [exclude_id]
        if gender:
            sql += " AND lower(gender)=?"; params.append(gender.lower())
        if relationship_status:
            sql += " AND lower(relationshipstatus)=?"; params.append(relationship_status.lower())
        sql += " ORDER BY rowid"
        return [_profile(r) for r in await self._fetchall(sql, params)]

    async def save_profile(self, p: Profile) -> None:
        async with self._connect() as db:
            await db.execute(f"""
              INSERT INTO profiles ({PROFILE_COLS}) VALUES (?,?,?,?,?,?,?,?,?,?)
              ON CONFLICT(id) DO UPDATE SET first_name=excluded.first_name, last_name=excluded.last_name,
                bio=excluded.bio, country=excluded.country, city=excluded.city, gender=excluded.gender,
                dateofbirth=excluded.dateofbirth, relationshipstatus=excluded.relationshipstatus,
                avatar_url=excluded.avatar_url
            """, (p.id, p.first_name, p.last_name, p.bio, p.country, p.city, p.gender,
                  p.dateofbirth, p.relationshipstatus, p.avatar_url))
            await db.commit()

    # preferences
    async def get_preferences(self, user_id: str) -> Optional[Preferences]:
        row = await self._fetchone(f"SELECT {PREF_COLS} FROM user_preferences WHERE user_id=?", (user_id,))
        return _preferences(row) if row else None

    async def save_preferences(self, p: Preferences) -> None:
        async with self._connect() as db:
            await db.execute(f"""
              INSERT INTO user_preferences ({PREF_COLS}) VALUES (?,?,?,?,?,?,?,?)
              ON CONFLICT(user_id) DO UPDATE SET looking_for_gender=excluded.looking_for_gender,
                looking_for_relationship_status=excluded.looking_for_relationship_status,
                distance_km=excluded.distance_km, age_min=excluded.age_min, age_max=excluded.age_max,
                height_min_cm=excluded.height_min_cm, height_max_cm=excluded.height_max_cm
            """, (p.user_id, p.looking_for_gender, p.looking_for_relationship_status, p.distance_km,
                  p.age_min, p.age_max, p.height_min_cm, p.height_max_cm))
            await db.commit()

    # media / interests
    async def list_media(self, user_id: str) -> List[MediaAsset]:
        rows = await self._fetchall("""
          SELECT id, user_id, media_type, media_url, display_order FROM user_media
           WHERE user_id=? ORDER BY display_order IS NULL, display_order, id
        """, (user_id,))
        return [_media(r) for r in rows]

    async def add_media(self, m: MediaAsset) -> int:
        async with self._connect() as db:
            cur = await db.execute("INSERT INTO user_media (user_id, media_type, media_url, display_order) VALUES (?,?,?,?)",
                                   (m.user_id, m.media_type, m.media_url, m.display_order))
            await db.commit()
            return cur.lastrowid

    async def list_interests(self, user_id: str, limit: int) -> List[str]:
        rows = await self._fetchall("""
          SELECT i.name FROM user_interests ui JOIN interests i ON i.id = ui.interest_id
           WHERE ui.user_id=? ORDER BY ui.id LIMIT ?
        """, (user_id, limit))
        return [r["name"] for r in rows]

    async def set_user_interests(self, user_id: str, names: Sequence[str]) -> None:
        async with self._connect() as db:
            await db.execute("DELETE FROM user_interests WHERE user_id=?", (user_id,))
            for name in names:
                await db.execute("INSERT INTO interests (name) VALUES (?) ON CONFLICT(name) DO NOTHING", (name,))
                await db.execute("""
                  INSERT INTO user_interests (user_id, interest_id)
                  SELECT ?, id FROM interests WHERE name=?
                  ON CONFLICT(user_id, interest_id) DO NOTHING
                """, (user_id, name))
            await db.commit()

    # likes
    async def insert_like(self, liker_id: str, liked_id: str) -> Optional[LikeRecord]:
        async with self._connect() as db:
            cur = await db.execute("""
              INSERT INTO user_likes (liker_id, liked_id, created_at) VALUES (?,?,?)
              ON CONFLICT(liker_id, liked_id) DO NOTHING
            """, (liker_id, liked_id, time.time()))
            await db.commit()
            inserted = cur.rowcount == 1
        if not inserted:
            return None
        return await self.find_like(liker_id, liked_id)

    async def find_like(self, liker_id: str, liked_id: str) -> Optional[LikeRecord]:
        row = await self._fetchone("SELECT id, liker_id, liked_id, created_at FROM user_likes WHERE liker_id=? AND liked_id=?",
                                   (liker_id, liked_id))
        return _like(row) if row else None

    async def list_likes_to(self, user_id: str) -> List[LikeRecord]:
        rows = await self._fetchall("""
          SELECT id, liker_id, liked_id, created_at FROM user_likes
           WHERE liked_id=? ORDER BY created_at DESC, id DESC
        """, (user_id,))
        return [_like(r) for r in rows]

    async def list_likes_from(self, user_id: str) -> List[LikeRecord]:
        rows = await self._fetchall("""
          SELECT id, liker_id, liked_id, created_at FROM user_likes
           WHERE liker_id=? ORDER BY created_at DESC, id DESC
        """, (user_id,))
        return [_like(r) for r in rows]

    # matches
    async def insert_match(self, a: str, b: str) -> Tuple[MatchRecord, bool]:
        lo, hi = _pair(a, b)
        async with self._connect() as db:
            cur = await db.execute("""
              INSERT INTO matches (user1_id, user2_id, user_lo, user_hi, created_at) VALUES (?,?,?,?,?)
              ON CONFLICT(user_lo, user_hi) DO NOTHING
            """, (a, b, lo, hi, time.time()))
            await db.commit()
            created = cur.rowcount == 1
        return await self.find_match(a, b), created

    async def find_match(self, a: str, b: str) -> Optional[MatchRecord]:
        row = await self._fetchone("SELECT id, user1_id, user2_id, created_at FROM matches WHERE user_lo=? AND user_hi=?",
                                   _pair(a, b))
        return _match(row) if row else None


class _PG:
    def __init__(self, dsn: str):
        self.dsn = dsn
        self.pool = None

    async def init(self, reset: bool):
        import asyncpg
        self.pool = await asyncpg.create_pool(self.dsn, min_size=config.PG_POOL_MIN, max_size=config.PG_POOL_MAX,
                                              timeout=config.PG_TIMEOUT)
        async with self.pool.acquire() as con:
            if reset:
                await con.execute(f"DROP TABLE IF EXISTS {', '.join(TABLES)} CASCADE")
            await con.execute(PG_SCHEMA)

    async def close(self):
        if self.pool:
            await self.pool.close()
            self.pool = None

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        async with self.pool.acquire() as con:
            r = await con.fetchrow(f"SELECT {PROFILE_COLS} FROM profiles WHERE id=$1", user_id)
            return _profile(r) if r else None

    async def list_profiles(self, exclude_id: str, *, gender=None, relationship_status=None) -> List[Profile]:
        conditions, params = ["id <> $1"], [exclude_id]
        if gender:
            params.append(gender.lower()); conditions.append(f"lower(gender)=${len(params)}")
        if relationship_status:
            params.append(relationship_status.lower()); conditions.append(f"lower(relationshipstatus)=${len(params)}")
        sql = f"SELECT {PROFILE_COLS} FROM profiles WHERE {' AND '.join(conditions)} ORDER BY id"
        async with self.pool.acquire() as con:
            return [_profile(r) for r in await con.fetch(sql, *params)]

    async def save_profile(self, p: Profile) -> None:
        async with self.pool.acquire() as con:
            await con.execute(f"""
              INSERT INTO profiles ({PROFILE_COLS}) VALUES ($1,$2,$3,$4,$5,$6,$7,$8,$9,$10)
              ON CONFLICT (id) DO UPDATE SET first_name=EXCLUDED.first_name, last_name=EXCLUDED.last_name,
                bio=EXCLUDED.bio, country=EXCLUDED.country, city=EXCLUDED.city, gender=EXCLUDED.gender,
                dateofbirth=EXCLUDED.dateofbirth, relationshipstatus=EXCLUDED.relationshipstatus,
                avatar_url=EXCLUDED.avatar_url
            """, p.id, p.first_name, p.last_name, p.bio, p.country, p.city, p.gender,
                p.dateofbirth, p.relationshipstatus, p.avatar_url)

    async def get_preferences(self, user_id: str) -> Optional[Preferences]:
        async with self.pool.acquire() as con:
            r = await con.fetchrow(f"SELECT {PREF_COLS} FROM user_preferences WHERE user_id=$1", user_id)
            return _preferences(r) if r else None

    async def save_preferences(self, p: Preferences) -> None:
        async with self.pool.acquire() as con:
            await con.execute(f"""
              INSERT INTO user_preferences ({PREF_COLS}) VALUES ($1,$2,$3,$4,$5,$6,$7,$8)
              ON CONFLICT (user_id) DO UPDATE SET looking_for_gender=EXCLUDED.looking_for_gender,
                looking_for_relationship_status=EXCLUDED.looking_for_relationship_status,
                distance_km=EXCLUDED.distance_km, age_min=EXCLUDED.age_min, age_max=EXCLUDED.age_max,
                height_min_cm=EXCLUDED.height_min_cm, height_max_cm=EXCLUDED.height_max_cm
            """, p.user_id, p.looking_for_gender, p.looking_for_relationship_status, p.distance_km,
                p.age_min, p.age_max, p.height_min_cm, p.height_max_cm)

    async def list_media(self, user_id: str) -> List[MediaAsset]:
        async with self.pool.acquire() as con:
            rows = await con.fetch("""
              SELECT id, user_id, media_type, media_url, display_order FROM user_media
               WHERE user_id=$1 ORDER BY display_order NULLS LAST, id
            """, user_id)
            return [_media(r) for r in rows]

    async def add_media(self, m: MediaAsset) -> int:
        async with self.pool.acquire() as con:
            return await con.fetchval("""
              INSERT INTO user_media (user_id, media_type, media_url, display_order) VALUES ($1,$2,$3,$4) RETURNING id
            """, m.user_id, m.media_type, m.media_url, m.display_order)

    async def list_interests(self, user_id: str, limit: int) -> List[str]:
        async with self.pool.acquire() as con:
            rows = await con.fetch("""
              SELECT i.name FROM user_interests ui JOIN interests i ON i.id = ui.interest_id
               WHERE ui.user_id=$1 ORDER BY ui.id LIMIT $2
            """, user_id, limit)
            return [r["name"] for r in rows]

    async def set_user_interests(self, user_id: str, names: Sequence[str]) -> None:
        async with self.pool.acquire() as con:
            async with con.transaction():
                await con.execute("DELETE FROM user_interests WHERE user_id=$1", user_id)
                for name in names:
                    await con.execute("INSERT INTO interests (name) VALUES ($1) ON CONFLICT (name) DO NOTHING", name)
                    await con.execute("""
                      INSERT INTO user_interests (user_id, interest_id)
                      SELECT $1, id FROM interests WHERE name=$2
                      ON CONFLICT (user_id, interest_id) DO NOTHING
                    """, user_id, name)

    async def insert_like(self, liker_id: str, liked_id: str) -> Optional[LikeRecord]:
        async with self.pool.acquire() as con:
            r = await con.fetchrow("""
              INSERT INTO user_likes (liker_id, liked_id) VALUES ($1,$2)
              ON CONFLICT (liker_id, liked_id) DO NOTHING
              RETURNING id, liker_id, liked_id, created_at
            """, liker_id, liked_id)
            return _like(r) if r else None

    async def find_like(self, liker_id: str, liked_id: str) -> Optional[LikeRecord]:
        async with self.pool.acquire() as con:
            r = await con.fetchrow("SELECT id, liker_id, liked_id, created_at FROM user_likes WHERE liker_id=$1 AND liked_id=$2",
                                   liker_id, liked_id)
            return _like(r) if r else None

    async def list_likes_to(self, user_id: str) -> List[LikeRecord]:
        async with self.pool.acquire() as con:
            rows = await con.fetch("""
              SELECT id, liker_id, liked_id, created_at FROM user_likes
               WHERE liked_id=$1 ORDER BY created_at DESC, id DESC
            """, user_id)
            return [_like(r) for r in rows]

    async def list_likes_from(self, user_id: str) -> List[LikeRecord]:
        async with self.pool.acquire() as con:
            rows = await con.fetch("""
              SELECT id, liker_id, liked_id, created_at FROM user_likes
               WHERE liker_id=$1 ORDER BY created_at DESC, id DESC
            """, user_id)
            return [_like(r) for r in rows]

    async def insert_match(self, a: str, b: str) -> Tuple[MatchRecord, bool]:
        lo, hi = _pair(a, b)
        async with self.pool.acquire() as con:
            r = await con.fetchrow("""
              INSERT INTO matches (user1_id, user2_id, user_lo, user_hi) VALUES ($1,$2,$3,$4)
              ON CONFLICT (user_lo, user_hi) DO NOTHING
              RETURNING id, user1_id, user2_id, created_at
            """, a, b, lo, hi)
            if r:
                return _match(r), True
            r = await con.fetchrow("SELECT id, user1_id, user2_id, created_at FROM matches WHERE user_lo=$1 AND user_hi=$2", lo, hi)
            return _match(r), False

    async def find_match(self, a: str, b: str) -> Optional[MatchRecord]:
        lo, hi = _pair(a, b)
        async with self.pool.acquire() as con:
            r = await con.fetchrow("SELECT id, user1_id, user2_id, created_at FROM matches WHERE user_lo=$1 AND user_hi=$2", lo, hi)
            return _match(r) if r else None
