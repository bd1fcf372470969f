import logging
import random
import re
import sqlite3

import requests

import openlibrary_client
import storage


logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 15
DEFAULT_GENRE = "Science Fiction"

STATUS_FOUND = "found"
STATUS_EXHAUSTED = "exhausted"
STATUS_NO_USER = "no_user"
STATUS_CANCELLED = "cancelled"
STATUS_ERROR = "error"

RECORDED = "recorded"
ALREADY_RECORDED = "already_recorded"
FAILED = "failed"

GENRE_SLUGS = {
    "Mystery": "mystery",
    "Science Fiction": "science_fiction",
    "Fantasy": "fantasy",
    "Romance": "romance",
    "Horror": "horror",
    "Thriller": "thriller",
    "Historical Fiction": "historical_fiction",
    "Biography": "biography",
    "Memoir": "memoir",
    "Self-Help": "self_help",
    "Poetry": "poetry",
    "Drama": "drama",
    "Adventure": "adventure",
    "Crime Fiction": "crime_fiction",
    "Dystopian": "dystopian",
    "Paranormal": "paranormal",
    "Magical Realism": "magical_realism",
    "Classic Literature": "classic_literature",
    "Children's Literature": "children",
    "Young Adult Fiction": "young_adult",
    "Satire": "satire",
    "Philosophical Fiction": "philosophical_fiction",
    "Literary Fiction": "literary_fiction",
    "Western": "western",
    "Detective Fiction": "detective",
    "War Fiction": "war_fiction",
    "Gothic Fiction": "gothic",
    "Political Fiction": "political_fiction",
    "Cyberpunk": "cyberpunk",
    "Coming-of-Age Fiction": "coming_of_age",
}


def resolve_genre_slug(genre):
    if genre in GENRE_SLUGS:
        return GENRE_SLUGS[genre]
    return re.sub(r"\s+", "_", genre.strip().lower())


def discover(user_id, genre, catalog=openlibrary_client, rng=random, max_attempts=MAX_ATTEMPTS,
             cancel_event=None, db_path=None):
    """Find one book in ``genre`` the user has not liked or passed on yet."""
    if not user_id:
        return _result(STATUS_NO_USER)
    seen_ids = load_seen_ids(user_id, db_path)
    slug = resolve_genre_slug(genre)
    return find_new_item(
        seen_ids,
        slug,
        catalog=catalog,
        rng=rng,
        max_attempts=max_attempts,
        cancel_event=cancel_event,
    )


def load_seen_ids(user_id, db_path=None):
    try:
        return storage.get_user_external_ids(user_id, db_path)
    except sqlite3.Error:
        logger.exception("Could not load history for user %s", user_id)
        return set()


def find_new_item(seen_ids, slug, catalog=openlibrary_client, rng=random, max_attempts=MAX_ATTEMPTS,
                  cancel_event=None):
    """Sample random offsets in ``slug`` until an unseen item with a cover turns up.

    ``catalog`` needs ``get_category_item_count`` and ``get_items_at_offset``;
    ``rng`` needs ``randrange``. Every attempt issues a fresh count query, and
    each attempt that yields nothing new counts against ``max_attempts``.
    """
    attempts = 0
    while attempts < max_attempts:
        if cancel_event is not None and cancel_event.is_set():
            logger.info("Discovery for %s cancelled after %d attempts", slug, attempts)
            return _result(STATUS_CANCELLED, attempts=attempts)
        attempts += 1
        try:
            item = _sample_item(slug, catalog, rng)
        except (RuntimeError, requests.RequestException) as exc:
            logger.warning("Attempt %d for %s failed: %s", attempts, slug, exc)
            continue
        except (KeyError, TypeError, ValueError) as exc:
            logger.exception("Malformed catalog response for %s", slug)
            return _result(STATUS_ERROR, attempts=attempts, error=str(exc))

        if item is None:
            continue
        if item["external_id"] in seen_ids:
            logger.debug("Attempt %d for %s hit seen item %s", attempts, slug, item["external_id"])
            continue
        return _result(STATUS_FOUND, item=item, attempts=attempts)

    logger.info("No new items in %s after %d attempts", slug, attempts)
    return _result(STATUS_EXHAUSTED, attempts=attempts)


def _sample_item(slug, catalog, rng):
    total = catalog.get_category_item_count(slug)
    if not total or total <= 0:
        return None
    offset = rng.randrange(total)
    items = catalog.get_items_at_offset(slug, offset, 1)
    with_cover = [item for item in items if item.get("cover_id")]
    if not with_cover:
        return None
    return with_cover[0]


def record_decision(user_id, item, liked, db_path=None):
    if not user_id:
        return STATUS_NO_USER
    record = {"user_id": user_id, "external_id": item["external_id"], "liked": liked}
    # only likes carry the title/author snapshot
    if liked:
        record["title"] = item.get("title")
        record["creator"] = primary_creator(item)
    try:
        inserted = storage.insert_interaction(record, db_path)
    except sqlite3.Error:
        logger.exception("Could not record decision on %s for user %s", item["external_id"], user_id)
        return FAILED
    if not inserted:
        logger.info("Book %s already recorded for user %s", item["external_id"], user_id)
        return ALREADY_RECORDED
    return RECORDED


def remove_liked(user_id, external_id, db_path=None):
    """Un-like a book. Awards already granted stay granted."""
    if not user_id:
        return False
    try:
        return storage.delete_interaction(user_id, external_id, db_path)
    except sqlite3.Error:
        logger.exception("Could not remove %s for user %s", external_id, user_id)
        return False


def primary_creator(item):
    creators = [name for name in item.get("creators") or [] if name]
    return creators[0] if creators else "Unknown"


def _result(status, item=None, attempts=0, error=None):
    return {"status": status, "item": item, "attempts": attempts, "error": error}
