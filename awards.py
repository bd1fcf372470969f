import logging
import sqlite3

import storage


logger = logging.getLogger(__name__)


def compute_stats(interactions):
    liked = sum(1 for entry in interactions if entry["liked"])
    disliked = sum(1 for entry in interactions if not entry["liked"])
    return {"total": len(interactions), "liked": liked, "disliked": disliked}


# Award 4 is granted by hand; ids missing here are never granted automatically.
# Award 5 also holds for a user with no decisions at all (0 == 0).
AWARD_RULES = {
    1: lambda stats: stats["total"] >= 1,
    2: lambda stats: stats["total"] >= 100,
    3: lambda stats: stats["liked"] >= 100,
    5: lambda stats: stats["liked"] == stats["disliked"],
}


def qualifying_award_ids(stats, award_ids, rules=None):
    rules = AWARD_RULES if rules is None else rules
    return [award_id for award_id in award_ids if award_id in rules and rules[award_id](stats)]


def evaluate_awards(user_id, db_path=None):
    """Grant every award the user newly qualifies for, then reload their awards.

    Safe to call on every visit to the awards page: already granted awards are
    skipped, and a grant rejected by the store is treated as already granted.
    Removing liked books never revokes a grant.
    """
    if not user_id:
        return {"new_award_ids": [], "awards": []}

    new_award_ids = []
    try:
        definitions = storage.list_award_definitions(db_path)
        granted = {grant["award_id"] for grant in storage.list_grants(user_id, db_path)}
        stats = compute_stats(storage.list_interactions(user_id, db_path=db_path))
    except sqlite3.Error:
        logger.exception("Could not load award inputs for user %s", user_id)
    else:
        pending = [definition["award_id"] for definition in definitions
                   if definition["award_id"] not in granted]
        for award_id in qualifying_award_ids(stats, pending):
            if _grant(user_id, award_id, db_path):
                new_award_ids.append(award_id)

    try:
        awards = storage.list_user_awards(user_id, db_path)
    except sqlite3.Error:
        logger.exception("Could not load awards for user %s", user_id)
        awards = []
    return {"new_award_ids": new_award_ids, "awards": awards}


def _grant(user_id, award_id, db_path):
    try:
        inserted = storage.insert_grant(user_id, award_id, db_path)
    except sqlite3.Error:
        logger.exception("Could not grant award %s to user %s", award_id, user_id)
        return False
    if not inserted:
        logger.info("Award %s already granted to user %s", award_id, user_id)
        return False
    logger.info("Granted award %s to user %s", award_id, user_id)
    return True
