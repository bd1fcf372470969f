import requests


BASE_URL = "https://openlibrary.org"
COVERS_BASE = "https://covers.openlibrary.org/b/id"
SHARE_BASE = "https://www.amazon.com/dp"
REQUEST_TIMEOUT = 10
NO_DESCRIPTION = "No description available."


def _get(url, params=None):
    response = requests.get(url, params=params, timeout=REQUEST_TIMEOUT)
    if response.status_code != 200:
        raise RuntimeError(f"Open Library request failed: {response.status_code}")
    return response.json()


def get_category_item_count(slug):
    url = f"{BASE_URL}/subjects/{slug}.json"
    data = _get(url, {"limit": 1})
    return data.get("work_count") or 0


def get_items_at_offset(slug, offset, limit=1):
    url = f"{BASE_URL}/subjects/{slug}.json"
    data = _get(url, {"limit": limit, "offset": offset})
    return [_to_item(work) for work in data.get("works") or []]


def get_item_detail(external_id):
    url = f"{BASE_URL}/works/{external_id}.json"
    data = _get(url)
    covers = data.get("covers") or []
    return {
        "external_id": external_id,
        "title": data.get("title", ""),
        "description": extract_description(data.get("description")),
        "cover_id": covers[0] if covers else None,
    }


def get_edition_isbns(external_id, limit=20):
    url = f"{BASE_URL}/works/{external_id}/editions.json"
    data = _get(url, {"limit": limit})
    entries = data.get("entries") or []
    best = next((entry for entry in entries if entry.get("isbn_10")), None)
    if best is None:
        best = entries[0] if entries else {}
    isbn10 = best.get("isbn_10") or []
    isbn13 = best.get("isbn_13") or []
    return {
        "isbn10": isbn10[0] if isbn10 else "",
        "isbn13": isbn13[0] if isbn13 else "",
    }


def get_work_details(external_id):
    details = get_item_detail(external_id)
    try:
        details.update(get_edition_isbns(external_id))
    except (RuntimeError, requests.RequestException):
        details.update({"isbn10": "", "isbn13": ""})
    details["link"] = get_work_url(external_id)
    return details


def extract_description(description):
    if isinstance(description, str) and description:
        return description
    if isinstance(description, dict) and description.get("value"):
        return description["value"]
    return NO_DESCRIPTION


def strip_work_key(key):
    return key.replace("/works/", "")


def get_share_url(isbn10):
    if not isbn10:
        return None
    return f"{SHARE_BASE}/{isbn10}"


def get_cover_url(cover_id, size="L"):
    if not cover_id:
        return None
    return f"{COVERS_BASE}/{cover_id}-{size}.jpg"


def get_work_url(external_id):
    return f"{BASE_URL}/works/{external_id}"


def _to_item(work):
    return {
        "external_id": strip_work_key(work["key"]),
        "title": work.get("title", ""),
        "creators": [author.get("name", "") for author in work.get("authors") or []],
        "cover_id": work.get("cover_id"),
    }
