import datetime
import pathlib
import sqlite3
from contextlib import contextmanager

import bcrypt


DATA_PATH = pathlib.Path("data")
DB_PATH = DATA_PATH / "app.db"
MIN_PASSWORD_LENGTH = 6

AWARD_DEFINITIONS = [
    (1, "First Page", "Make your first decision on a book.", "awards/first_page.png"),
    (2, "Centurion", "Make decisions on 100 books.", "awards/centurion.png"),
    (3, "Bookworm", "Like 100 books.", "awards/bookworm.png"),
    (4, "Founding Reader", "Awarded by the team to early readers.", "awards/founding_reader.png"),
    (5, "Open Mind", "Like exactly as many books as you pass on.", "awards/open_mind.png"),
]


def init_db(db_path=None):
    path = _resolve_db_path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with _get_conn(path) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                email TEXT UNIQUE NOT NULL,
                password_hash TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS user_books (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                external_id TEXT NOT NULL,
                title TEXT,
                creator TEXT,
                liked INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                UNIQUE(user_id, external_id),
                FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS awards (
                id INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                description TEXT NOT NULL,
                image_ref TEXT
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS user_awards (
                user_id INTEGER NOT NULL,
                award_id INTEGER NOT NULL,
                granted_at TEXT NOT NULL,
                PRIMARY KEY(user_id, award_id),
                FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE,
                FOREIGN KEY(award_id) REFERENCES awards(id)
            )
            """
        )
        conn.executemany(
            "INSERT OR IGNORE INTO awards (id, name, description, image_ref) VALUES (?, ?, ?, ?)",
            AWARD_DEFINITIONS,
        )


def create_user(email, password, db_path=None):
    if not email or not password:
        return None
    password_hash = _hash_password(password)
    created_at = _now()
    path = _resolve_db_path(db_path)
    with _get_conn(path) as conn:
        try:
            cursor = conn.execute(
                "INSERT INTO users (email, password_hash, created_at) VALUES (?, ?, ?)",
                (email.strip().lower(), password_hash, created_at),
            )
        except sqlite3.IntegrityError:
            return None
        return {"id": cursor.lastrowid, "email": email.strip().lower(), "created_at": created_at}


def authenticate_user(email, password, db_path=None):
    if not email or not password:
        return None
    path = _resolve_db_path(db_path)
    with _get_conn(path) as conn:
        row = conn.execute(
            "SELECT id, email, password_hash, created_at FROM users WHERE email = ?",
            (email.strip().lower(),),
        ).fetchone()
    if not row:
        return None
    if not _verify_password(password, row["password_hash"]):
        return None
    return {"id": row["id"], "email": row["email"], "created_at": row["created_at"]}


def get_user(user_id, db_path=None):
    path = _resolve_db_path(db_path)
    with _get_conn(path) as conn:
        row = conn.execute(
            "SELECT id, email, created_at FROM users WHERE id = ?", (user_id,)
        ).fetchone()
    if not row:
        return None
    return {"id": row["id"], "email": row["email"], "created_at": row["created_at"]}


def validate_new_password(new_password, confirm_password):
    """Return an error message, or None when the new password is acceptable."""
    if new_password != confirm_password:
        return "Passwords do not match."
    if len(new_password or "") < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters long."
    return None


def change_password(user_id, new_password, db_path=None):
    if len(new_password or "") < MIN_PASSWORD_LENGTH:
        return False
    path = _resolve_db_path(db_path)
    with _get_conn(path) as conn:
        cursor = conn.execute(
            "UPDATE users SET password_hash = ? WHERE id = ?",
            (_hash_password(new_password), user_id),
        )
    return cursor.rowcount > 0


def insert_interaction(record, db_path=None):
    """Insert one decision row.

    Returns False when the (user_id, external_id) pair is already recorded.
    """
    path = _resolve_db_path(db_path)
    with _get_conn(path) as conn:
        try:
            conn.execute(
                """
                INSERT INTO user_books (user_id, external_id, title, creator, liked, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    record["user_id"],
                    record["external_id"],
                    record.get("title"),
                    record.get("creator"),
                    1 if record["liked"] else 0,
                    _now(),
                ),
            )
        except sqlite3.IntegrityError:
            return False
    return True


def list_interactions(user_id, liked=None, db_path=None):
    query = """
        SELECT user_id, external_id, title, creator, liked, created_at
        FROM user_books
        WHERE user_id = ?
    """
    params = [user_id]
    if liked is not None:
        query += " AND liked = ?"
        params.append(1 if liked else 0)
    query += " ORDER BY created_at DESC, id DESC"
    path = _resolve_db_path(db_path)
    with _get_conn(path) as conn:
        rows = conn.execute(query, params).fetchall()
    return [
        {
            "user_id": row["user_id"],
            "external_id": row["external_id"],
            "title": row["title"],
            "creator": row["creator"],
            "liked": bool(row["liked"]),
            "created_at": row["created_at"],
        }
        for row in rows
    ]


def get_user_external_ids(user_id, db_path=None):
    path = _resolve_db_path(db_path)
    with _get_conn(path) as conn:
        rows = conn.execute(
            "SELECT external_id FROM user_books WHERE user_id = ?", (user_id,)
        ).fetchall()
    return {row["external_id"] for row in rows}


def delete_interaction(user_id, external_id, db_path=None):
    path = _resolve_db_path(db_path)
    with _get_conn(path) as conn:
        cursor = conn.execute(
            "DELETE FROM user_books WHERE user_id = ? AND external_id = ?",
            (user_id, external_id),
        )
    return cursor.rowcount > 0


def list_award_definitions(db_path=None):
    path = _resolve_db_path(db_path)
    with _get_conn(path) as conn:
        rows = conn.execute(
            "SELECT id, name, description, image_ref FROM awards ORDER BY id"
        ).fetchall()
    return [_award_from_row(row) for row in rows]


def list_grants(user_id, db_path=None):
    path = _resolve_db_path(db_path)
    with _get_conn(path) as conn:
        rows = conn.execute(
            "SELECT user_id, award_id, granted_at FROM user_awards WHERE user_id = ?",
            (user_id,),
        ).fetchall()
    return [
        {"user_id": row["user_id"], "award_id": row["award_id"], "granted_at": row["granted_at"]}
        for row in rows
    ]


def insert_grant(user_id, award_id, db_path=None):
    path = _resolve_db_path(db_path)
    with _get_conn(path) as conn:
        try:
            conn.execute(
                "INSERT INTO user_awards (user_id, award_id, granted_at) VALUES (?, ?, ?)",
                (user_id, award_id, _now()),
            )
        except sqlite3.IntegrityError:
            return False
    return True


def list_user_awards(user_id, db_path=None):
    path = _resolve_db_path(db_path)
    with _get_conn(path) as conn:
        rows = conn.execute(
            """
            SELECT a.id, a.name, a.description, a.image_ref, g.granted_at
            FROM user_awards g
            JOIN awards a ON a.id = g.award_id
            WHERE g.user_id = ?
            ORDER BY g.granted_at, a.id
            """,
            (user_id,),
        ).fetchall()
    awards = []
    for row in rows:
        award = _award_from_row(row)
        award["granted_at"] = row["granted_at"]
        awards.append(award)
    return awards


def _award_from_row(row):
    return {
        "award_id": row["id"],
        "name": row["name"],
        "description": row["description"],
        "image_ref": row["image_ref"],
    }


def _resolve_db_path(db_path):
    return pathlib.Path(db_path) if db_path else DB_PATH


def _connect(path):
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def _get_conn(path):
    conn = _connect(path)
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def _hash_password(password):
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def _verify_password(password, password_hash):
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def _now():
    return datetime.datetime.now(datetime.UTC).isoformat(timespec="microseconds")
