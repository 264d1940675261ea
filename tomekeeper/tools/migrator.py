"""
Migrator — upgrades saved documents one schema version at a time.

build_migrations() returns the ordered registry: target version -> a
`(doc) -> doc` step that only has to understand the shape of the version
immediately before it. Steps are additive: they synthesize new fields from
legacy data and never drop records (dropping is the validator's job).

The schema version lives under its own storage key, outside the document.
"""

import copy
import uuid
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from tomekeeper.models.base import as_optional_str, is_number
from tomekeeper.tools import storage_keys as keys
from tomekeeper.tools.content import ContentRegistry, load_content

logger = logging.getLogger("Migrator")

SCHEMA_VERSION = 5

Migration = Callable[[Dict[str, Any]], Dict[str, Any]]

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]
MONTH_ABBREVIATIONS = {name[:3].lower(): name for name in MONTH_NAMES}
MONTH_ABBREVIATIONS["sept"] = "September"


# ---------------------------------------------------------------------------
# Month / year normalization (used by the v3 step)
# ---------------------------------------------------------------------------

def normalize_month_name(value: Any) -> str:
    """'Jan' / 'jan.' / '1' / 1 -> 'January'. Unrecognized text is returned trimmed."""
    if value is None:
        return ""
    text = str(value).strip()
    if not text or text in MONTH_NAMES:
        return text
    lowered = text.lower().rstrip(".")
    if lowered in MONTH_ABBREVIATIONS:
        return MONTH_ABBREVIATIONS[lowered]
    for name in MONTH_NAMES:
        if name.lower() == lowered:
            return name
    if lowered.isdigit() and 1 <= int(lowered) <= 12:
        return MONTH_NAMES[int(lowered) - 1]
    return text


def normalize_year(value: Any) -> str:
    """'25' -> '2025'. Four-digit years pass; anything else is returned as text."""
    if value is None:
        return ""
    text = str(value).strip()
    if text.isdigit():
        number = int(text)
        if number < 100:
            return str(2000 + number)
        if 1000 <= number < 10000:
            return str(number)
    return text


def is_valid_month(value: str) -> bool:
    return normalize_month_name(value) in MONTH_NAMES


def is_valid_year(value: str) -> bool:
    return len(value) == 4 and value.isdigit()


def period_from_date(value: Any) -> Optional[Tuple[str, str]]:
    """(month name, year) from an ISO date string, or None if unparseable."""
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return MONTH_NAMES[parsed.month - 1], str(parsed.year)


def normalize_quest_period(quest: Dict[str, Any]) -> Dict[str, Any]:
    month = "" if quest.get("month") is None else str(quest["month"])
    year = "" if quest.get("year") is None else str(quest["year"])
    if not month.strip() and not year.strip():
        return quest

    date_period = period_from_date(quest.get("dateCompleted")) or period_from_date(quest.get("dateAdded"))
    if date_period is not None:
        if not is_valid_month(month) or not is_valid_year(year) or year != date_period[1]:
            return {**quest, "month": date_period[0], "year": date_period[1]}

    normalized_month = normalize_month_name(month)
    normalized_year = normalize_year(year)
    if normalized_month and normalized_month not in MONTH_NAMES:
        logger.warning(f"Quest has a month that could not be normalized: '{normalized_month}'")
    if normalized_year and not is_valid_year(normalized_year):
        logger.warning(f"Quest has a year that could not be normalized: '{normalized_year}'")
    return {**quest, "month": normalized_month, "year": normalized_year}


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------

def _map_quests(state: Dict[str, Any], fn: Callable[[Dict[str, Any]], Dict[str, Any]]) -> Dict[str, Any]:
    """Apply `fn` to every quest object in the three quest lists."""
    migrated = dict(state)
    for key in keys.QUEST_LIST_KEYS:
        if isinstance(migrated.get(key), list):
            migrated[key] = [fn(q) if isinstance(q, dict) else q for q in migrated[key]]
    return migrated


def _migrate_to_v1(content: ContentRegistry) -> Migration:
    base_keys = (
        keys.ACTIVE_ASSIGNMENTS, keys.COMPLETED_QUESTS, keys.DISCARDED_QUESTS,
        keys.EQUIPPED_ITEMS, keys.INVENTORY_ITEMS, keys.LEARNED_ABILITIES,
        keys.ATMOSPHERIC_BUFFS, keys.ACTIVE_CURSES, keys.COMPLETED_CURSES,
        keys.TEMPORARY_BUFFS, keys.BUFF_MONTH_COUNTER, keys.SELECTED_GENRES,
        keys.GENRE_DICE_SELECTION,
    )

    def add_rewards(quest):
        if isinstance(quest.get("rewards"), dict):
            return quest
        return {**quest, "rewards": content.quest_reward_defaults(quest)}

    def step(state):
        migrated = _map_quests(state, add_rewards)
        for key in base_keys:
            if key not in migrated:
                migrated[key] = copy.deepcopy(keys.EMPTY_STATE[key])
        return migrated

    return step


def _migrate_to_v2(state):
    """Library Restoration fields."""
    migrated = dict(state)
    for key in (
        keys.DUSTY_BLUEPRINTS, keys.COMPLETED_RESTORATION_PROJECTS, keys.COMPLETED_WINGS,
        keys.PASSIVE_ITEM_SLOTS, keys.PASSIVE_FAMILIAR_SLOTS,
    ):
        if key not in migrated:
            migrated[key] = copy.deepcopy(keys.EMPTY_STATE[key])
    return migrated


def _migrate_to_v3(state):
    """Quest lifecycle dates, and month/year cleanup."""
    def add_dates(quest):
        dated = {
            **quest,
            "dateAdded": quest.get("dateAdded") or None,
            "dateCompleted": quest.get("dateCompleted") or None,
        }
        return normalize_quest_period(dated)

    return _map_quests(state, add_dates)


def _migrate_to_v4(state):
    """Cover and page-count metadata on quests."""
    def add_metadata(quest):
        return {
            **quest,
            "coverUrl": quest.get("coverUrl"),
            "pageCountRaw": quest["pageCountRaw"] if is_number(quest.get("pageCountRaw")) else None,
            "pageCountEffective": (
                quest["pageCountEffective"] if is_number(quest.get("pageCountEffective")) else None
            ),
        }

    return _map_quests(state, add_metadata)


def _title_author_key(quest):
    title = quest.get("book") if isinstance(quest.get("book"), str) else ""
    author = quest.get("bookAuthor") if isinstance(quest.get("bookAuthor"), str) else ""
    return f"{title.strip().lower()}|{author.strip().lower()}"


def _has_book_data(quest):
    return bool(
        quest.get("book")
        or quest.get("bookAuthor")
        or quest.get("coverUrl") is not None
        or is_number(quest.get("pageCountRaw"))
        or is_number(quest.get("pageCountEffective"))
    )


def _book_from_quest(quest, book_id, quest_id, completed, now):
    page_count = quest.get("pageCountRaw")
    if not is_number(page_count):
        page_count = quest.get("pageCount")
    cover = quest.get("coverUrl") if isinstance(quest.get("coverUrl"), str) else quest.get("cover")
    date_added = quest.get("dateAdded") if isinstance(quest.get("dateAdded"), str) else now
    date_completed = quest.get("dateCompleted") if isinstance(quest.get("dateCompleted"), str) else now
    return {
        "id": book_id,
        "title": quest.get("book") if isinstance(quest.get("book"), str) else "",
        "author": quest.get("bookAuthor") if isinstance(quest.get("bookAuthor"), str) else "",
        "cover": cover if isinstance(cover, str) else None,
        "pageCount": max(0, int(page_count // 1)) if is_number(page_count) else None,
        "status": "completed" if completed else "reading",
        "dateAdded": date_added,
        "dateCompleted": date_completed if completed else None,
        "links": {"questIds": [quest_id], "curriculumPromptIds": []},
    }


def _migrate_to_v5(state):
    """Book-first: every quest gets an id, and book data moves into `books`."""
    migrated = dict(state)
    if not isinstance(migrated.get(keys.BOOKS), dict):
        migrated[keys.BOOKS] = {}
    if not isinstance(migrated.get(keys.EXTERNAL_CURRICULUM), dict):
        migrated[keys.EXTERNAL_CURRICULUM] = {"curriculums": {}}

    books = dict(migrated[keys.BOOKS])
    book_by_title_author: Dict[str, str] = {}
    now = datetime.now(timezone.utc).isoformat()

    for list_key in keys.QUEST_LIST_KEYS:
        if not isinstance(migrated.get(list_key), list):
            continue
        completed = list_key == keys.COMPLETED_QUESTS
        quests = []
        for quest in migrated[list_key]:
            if not isinstance(quest, dict):
                quests.append(quest)
                continue
            quest_id = as_optional_str(quest.get("id")) or str(uuid.uuid4())
            book_id = as_optional_str(quest.get("bookId"))
            if book_id and isinstance(books.get(book_id), dict):
                links = books[book_id].get("links")
                if not isinstance(links, dict):
                    links = books[book_id]["links"] = {}
                quest_ids = links.setdefault("questIds", [])
                if isinstance(quest_ids, list) and quest_id not in quest_ids:
                    quest_ids.append(quest_id)
            elif _has_book_data(quest):
                dedupe_key = _title_author_key(quest)
                existing_id = book_by_title_author.get(dedupe_key)
                if existing_id and existing_id in books:
                    book_id = existing_id
                    book = books[book_id]
                    if quest_id not in book["links"]["questIds"]:
                        book["links"]["questIds"].append(quest_id)
                    if completed:
                        book["status"] = "completed"
                        book["dateCompleted"] = (
                            quest["dateCompleted"] if isinstance(quest.get("dateCompleted"), str) else now
                        )
                else:
                    book_id = book_id or str(uuid.uuid4())
                    book_by_title_author[dedupe_key] = book_id
                    books[book_id] = _book_from_quest(quest, book_id, quest_id, completed, now)
            quests.append({**quest, "id": quest_id, "bookId": book_id})
        migrated[list_key] = quests

    migrated[keys.BOOKS] = books
    return migrated


def build_migrations(content: ContentRegistry) -> Dict[int, Migration]:
    """The ordered registry, keyed by the version each step produces."""
    return {
        1: _migrate_to_v1(content),
        2: _migrate_to_v2,
        3: _migrate_to_v3,
        4: _migrate_to_v4,
        5: _migrate_to_v5,
    }


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def read_schema_version(store) -> int:
    """Stored schema version; missing or unreadable means 0 (pre-versioning)."""
    value = store.get(keys.SCHEMA_VERSION_KEY, None)
    if value is None:
        return 0
    if not is_number(value) or value < 0:
        logger.warning(f"Invalid stored schema version ({type(value).__name__}); assuming 0")
        return 0
    return int(value)


def apply_migrations(
    document: Dict[str, Any],
    from_version: int,
    content: Optional[ContentRegistry] = None,
    migrations: Optional[Dict[int, Migration]] = None,
) -> Dict[str, Any]:
    """Run every step after `from_version` on a deep copy of `document`.

    No storage is touched. A document from a newer version than this build
    knows about is returned as-is.
    """
    document = copy.deepcopy(document) if isinstance(document, dict) else {}
    if from_version > SCHEMA_VERSION:
        logger.warning(
            f"Data is from schema version {from_version}, newer than supported "
            f"version {SCHEMA_VERSION}; loading without migration"
        )
        return document
    if from_version == SCHEMA_VERSION:
        return document

    if migrations is None:
        migrations = build_migrations(content or load_content())

    logger.info(f"Migrating data from schema version {from_version} to {SCHEMA_VERSION}")
    for version in range(from_version + 1, SCHEMA_VERSION + 1):
        step = migrations.get(version)
        if step is None:
            logger.warning(f"No migration defined for version {version}; skipping")
            continue
        document = step(document)
    return document


def migrate_state(
    state: Dict[str, Any],
    store,
    content: Optional[ContentRegistry] = None,
    migrations: Optional[Dict[int, Migration]] = None,
) -> Dict[str, Any]:
    """Migrate from the stored version, then record the current version.

    The version marker is only written when migration actually ran, so a
    second call against the same store is a no-op.
    """
    stored_version = read_schema_version(store)
    migrated = apply_migrations(state, stored_version, content, migrations)
    if stored_version < SCHEMA_VERSION:
        store.set(keys.SCHEMA_VERSION_KEY, SCHEMA_VERSION)
        logger.info(f"Migration complete. Data is now at schema version {SCHEMA_VERSION}")
    return migrated
