"""
Validator — turns arbitrary JSON into the canonical document shape.

Validation is total: nothing in this module raises on bad input. Entries that
cannot be fixed (not an object, missing identity) are dropped and logged;
everything else falls back to documented defaults. The whole-document pass is
driven by DOCUMENT_RULES so each key's handling can be tested on its own.
"""

import uuid
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import ValidationError

from tomekeeper.models import (
    AtmosphericBuffModel,
    BookModel,
    CanonicalModel,
    CategoryModel,
    CurriculumModel,
    CurseModel,
    ItemModel,
    PassiveSlotModel,
    PromptModel,
    QuestModel,
    TemporaryBuffModel,
)
from tomekeeper.models.base import (
    as_optional_str,
    as_unique_str_list,
    is_number,
)
from tomekeeper.tools import storage_keys as keys

logger = logging.getLogger("Validator")


# ---------------------------------------------------------------------------
# Single entries
# ---------------------------------------------------------------------------

def _validate_entry(model: Type[CanonicalModel], value: Any, context: str) -> Optional[Dict[str, Any]]:
    if not isinstance(value, dict):
        logger.warning(f"Skipping invalid entry at {context}: not an object")
        return None
    try:
        return model.model_validate(value).to_json_dict()
    except ValidationError as e:
        logger.warning(f"Skipping invalid entry at {context}: {e.error_count()} validation error(s)")
        return None


def validate_quest(value: Any, context: str = "quest") -> Optional[Dict[str, Any]]:
    return _validate_entry(QuestModel, value, context)


def validate_item(value: Any, context: str = "item") -> Optional[Dict[str, Any]]:
    return _validate_entry(ItemModel, value, context)


def validate_passive_slot(value: Any, context: str = "passiveSlot") -> Optional[Dict[str, Any]]:
    return _validate_entry(PassiveSlotModel, value, context)


def validate_curse(value: Any, context: str = "curse") -> Optional[Dict[str, Any]]:
    return _validate_entry(CurseModel, value, context)


def validate_temporary_buff(value: Any, context: str = "temporaryBuff") -> Optional[Dict[str, Any]]:
    return _validate_entry(TemporaryBuffModel, value, context)


def validate_book(value: Any, context: str = "book") -> Optional[Dict[str, Any]]:
    return _validate_entry(BookModel, value, context)


def validate_prompt(value: Any, context: str = "prompt") -> Optional[Dict[str, Any]]:
    return _validate_entry(PromptModel, value, context)


# ---------------------------------------------------------------------------
# Collections and scalars
# ---------------------------------------------------------------------------

def validate_object_list(
    value: Any,
    validate_fn: Callable[[Any, str], Optional[Dict[str, Any]]],
    context: str,
) -> List[Dict[str, Any]]:
    """Validate each element; invalid ones are skipped, order is kept."""
    if not isinstance(value, list):
        logger.warning(f"Invalid {context}: not a list, using empty list")
        return []
    validated = []
    for index, entry in enumerate(value):
        result = validate_fn(entry, f"{context}[{index}]")
        if result is not None:
            validated.append(result)
    return validated


def validate_string_list(value: Any, context: str = "strings") -> List[str]:
    """Non-empty strings only."""
    if not isinstance(value, list):
        logger.warning(f"Invalid {context}: not a list, using empty list")
        return []
    return [v for v in value if isinstance(v, str) and v.strip()]


def validate_unique_string_list(value: Any, context: str = "strings") -> List[str]:
    if not isinstance(value, list):
        logger.warning(f"Invalid {context}: not a list, using empty list")
        return []
    return as_unique_str_list(value)


def validate_id_list(value: Any, context: str = "ids") -> List[str]:
    """Identifiers stored as strings; numeric ids from older saves are stringified."""
    if not isinstance(value, list):
        logger.warning(f"Invalid {context}: not a list, using empty list")
        return []
    ids = []
    for v in value:
        text = as_optional_str(v)
        if text is not None and text.strip() not in ids:
            ids.append(text.strip())
    return ids


def validate_counter(value: Any, default: float = 0, context: str = "number", integer: bool = False):
    """Finite, non-negative number; `integer` floors the value."""
    if not is_number(value):
        logger.warning(f"Invalid {context}: not a number, using default {default}")
        return default
    if value < 0:
        logger.warning(f"Invalid {context}: negative value {value}, clamping to 0")
        return 0
    if integer:
        return int(value // 1)
    return value


def validate_genre_dice_selection(value: Any, context: str = keys.GENRE_DICE_SELECTION) -> str:
    if isinstance(value, str) and value in keys.DICE_TYPES:
        return value
    logger.warning(f"Invalid {context}: not a valid dice selection, using default {keys.DEFAULT_DICE}")
    return keys.DEFAULT_DICE


def validate_atmospheric_buffs(value: Any, context: str = keys.ATMOSPHERIC_BUFFS) -> Dict[str, Dict[str, Any]]:
    if not isinstance(value, dict):
        logger.warning(f"Invalid {context}: not an object, using empty object")
        return {}
    validated = {}
    for name, entry in value.items():
        if not isinstance(name, str) or not name.strip():
            logger.warning(f"Skipping atmospheric buff with empty name in {context}")
            continue
        result = _validate_entry(AtmosphericBuffModel, entry, f"{context}[{name}]")
        if result is not None:
            validated[name] = result
    return validated


def validate_books(value: Any, context: str = keys.BOOKS) -> Dict[str, Dict[str, Any]]:
    """Book map keyed by the book's own id."""
    if not isinstance(value, dict):
        logger.warning(f"Invalid {context}: not an object, using empty object")
        return {}
    validated = {}
    for key, entry in value.items():
        book = validate_book(entry, f"{context}[{key}]")
        if book is None:
            continue
        if book["id"] != key:
            logger.warning(f"Book stored under '{key}' has id '{book['id']}'; re-keying")
        validated[book["id"]] = book
    return validated


def _validate_node_map(
    value: Any,
    model: Type[CanonicalModel],
    context: str,
    children: Optional[str] = None,
    validate_children: Optional[Callable[[Any, str], Dict[str, Any]]] = None,
) -> Dict[str, Dict[str, Any]]:
    if not isinstance(value, dict):
        logger.warning(f"Invalid {context}: not an object, using empty object")
        return {}
    validated = {}
    for key, entry in value.items():
        node = _validate_entry(model, entry, f"{context}[{key}]")
        if node is None:
            continue
        if children and validate_children:
            node[children] = validate_children(node[children], f"{context}[{key}].{children}")
        validated[node["id"]] = node
    return validated


def _validate_prompts(value: Any, context: str) -> Dict[str, Dict[str, Any]]:
    return _validate_node_map(value, PromptModel, context)


def _validate_categories(value: Any, context: str) -> Dict[str, Dict[str, Any]]:
    return _validate_node_map(value, CategoryModel, context, "prompts", _validate_prompts)


def validate_external_curriculum(value: Any, context: str = keys.EXTERNAL_CURRICULUM) -> Dict[str, Any]:
    """`{curriculums: {id: {id, name, categories: {id: {id, name, prompts: {...}}}}}}`."""
    if not isinstance(value, dict):
        logger.warning(f"Invalid {context}: not an object, using empty curriculum")
        return {"curriculums": {}}
    curriculums = _validate_node_map(
        value.get("curriculums", {}), CurriculumModel, f"{context}.curriculums",
        "categories", _validate_categories,
    )
    return {"curriculums": curriculums}


def validate_form_data(value: Any) -> Dict[str, Any]:
    """Character-sheet form values: only strings and numbers survive."""
    if not isinstance(value, dict):
        return {}
    return {
        k: v for k, v in value.items()
        if isinstance(k, str) and (isinstance(v, str) or is_number(v))
    }


# ---------------------------------------------------------------------------
# Whole document
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FieldRule:
    """How one top-level key is validated."""
    kind: str
    default: Any
    validate: Callable[[Any], Any]


def _list_of(validate_fn, key):
    return lambda value: validate_object_list(value, validate_fn, key)


DOCUMENT_RULES: Dict[str, FieldRule] = {
    keys.LEARNED_ABILITIES: FieldRule(
        "strings", [], lambda v: validate_string_list(v, keys.LEARNED_ABILITIES)),
    keys.EQUIPPED_ITEMS: FieldRule(
        "items", [], _list_of(validate_item, keys.EQUIPPED_ITEMS)),
    keys.INVENTORY_ITEMS: FieldRule(
        "items", [], _list_of(validate_item, keys.INVENTORY_ITEMS)),
    keys.ACTIVE_ASSIGNMENTS: FieldRule(
        "quests", [], _list_of(validate_quest, keys.ACTIVE_ASSIGNMENTS)),
    keys.COMPLETED_QUESTS: FieldRule(
        "quests", [], _list_of(validate_quest, keys.COMPLETED_QUESTS)),
    keys.DISCARDED_QUESTS: FieldRule(
        "quests", [], _list_of(validate_quest, keys.DISCARDED_QUESTS)),
    keys.ATMOSPHERIC_BUFFS: FieldRule(
        "map", {}, validate_atmospheric_buffs),
    keys.ACTIVE_CURSES: FieldRule(
        "curses", [], _list_of(validate_curse, keys.ACTIVE_CURSES)),
    keys.COMPLETED_CURSES: FieldRule(
        "curses", [], _list_of(validate_curse, keys.COMPLETED_CURSES)),
    keys.TEMPORARY_BUFFS: FieldRule(
        "buffs", [], _list_of(validate_temporary_buff, keys.TEMPORARY_BUFFS)),
    keys.BUFF_MONTH_COUNTER: FieldRule(
        "counter", 0, lambda v: validate_counter(v, 0, keys.BUFF_MONTH_COUNTER, integer=True)),
    keys.SELECTED_GENRES: FieldRule(
        "strings", [], lambda v: validate_unique_string_list(v, keys.SELECTED_GENRES)),
    keys.GENRE_DICE_SELECTION: FieldRule(
        "enum", keys.DEFAULT_DICE, validate_genre_dice_selection),
    keys.SHELF_BOOK_COLORS: FieldRule(
        "strings", [], lambda v: validate_string_list(v, keys.SHELF_BOOK_COLORS)),
    keys.DUSTY_BLUEPRINTS: FieldRule(
        "counter", 0, lambda v: validate_counter(v, 0, keys.DUSTY_BLUEPRINTS)),
    keys.COMPLETED_RESTORATION_PROJECTS: FieldRule(
        "ids", [], lambda v: validate_id_list(v, keys.COMPLETED_RESTORATION_PROJECTS)),
    keys.COMPLETED_WINGS: FieldRule(
        "ids", [], lambda v: validate_id_list(v, keys.COMPLETED_WINGS)),
    keys.PASSIVE_ITEM_SLOTS: FieldRule(
        "slots", [], _list_of(validate_passive_slot, keys.PASSIVE_ITEM_SLOTS)),
    keys.PASSIVE_FAMILIAR_SLOTS: FieldRule(
        "slots", [], _list_of(validate_passive_slot, keys.PASSIVE_FAMILIAR_SLOTS)),
    keys.CLAIMED_ROOM_REWARDS: FieldRule(
        "ids", [], lambda v: validate_id_list(v, keys.CLAIMED_ROOM_REWARDS)),
    keys.DUNGEON_COMPLETION_DRAWS_REDEEMED: FieldRule(
        "counter", 0, lambda v: validate_counter(v, 0, keys.DUNGEON_COMPLETION_DRAWS_REDEEMED, integer=True)),
    keys.BOOKS: FieldRule(
        "books", {}, validate_books),
    keys.EXTERNAL_CURRICULUM: FieldRule(
        "curriculum", {"curriculums": {}}, validate_external_curriculum),
}


def validate_field(key: str, value: Any) -> Any:
    """Validate a single top-level key. Unknown keys pass through untouched."""
    rule = DOCUMENT_RULES.get(key)
    if rule is None:
        return value
    return rule.validate(value)


def _dedupe_slot_ids(document: Dict[str, Any]) -> None:
    seen = set()
    for slot_key in keys.PASSIVE_SLOT_KEYS:
        kept = []
        for slot in document[slot_key]:
            if slot["slotId"] in seen:
                logger.warning(f"Dropping duplicate passive slot '{slot['slotId']}' in {slot_key}")
                continue
            seen.add(slot["slotId"])
            kept.append(slot)
        document[slot_key] = kept


def _reconcile_quest_ids(document: Dict[str, Any]) -> None:
    """Every quest gets an id, and an id lives in only one quest list."""
    seen = set()
    for list_key in keys.QUEST_LIST_KEYS:
        kept = []
        for quest in document[list_key]:
            if not quest.get("id"):
                quest["id"] = str(uuid.uuid4())
                logger.warning(f"Assigned id {quest['id']} to quest without one in {list_key}")
            if quest["id"] in seen:
                logger.warning(f"Dropping duplicate quest '{quest['id']}' in {list_key}")
                continue
            seen.add(quest["id"])
            kept.append(quest)
        document[list_key] = kept


def _reconcile_item_placement(document: Dict[str, Any]) -> None:
    """An item name is placed once: slots win over equipped, equipped over inventory."""
    placed = set()
    for slot_key in keys.PASSIVE_SLOT_KEYS:
        for slot in document[slot_key]:
            name = slot["itemName"]
            if name is None:
                continue
            if name in placed:
                logger.warning(f"Clearing '{name}' from slot '{slot['slotId']}': already placed")
                slot["itemName"] = None
                continue
            placed.add(name)

    for list_key in (keys.EQUIPPED_ITEMS, keys.INVENTORY_ITEMS):
        kept = []
        for item in document[list_key]:
            if item["name"] in placed:
                logger.warning(f"Dropping '{item['name']}' from {list_key}: already placed")
                continue
            placed.add(item["name"])
            kept.append(item)
        document[list_key] = kept


def _iter_prompts(curriculum: Dict[str, Any]):
    for node in curriculum["curriculums"].values():
        for category in node["categories"].values():
            yield from category["prompts"].values()


def _relink(current: List[str], owners: List[str]) -> List[str]:
    links = [owner_id for owner_id in dict.fromkeys(current) if owner_id in owners]
    links.extend(owner_id for owner_id in owners if owner_id not in links)
    return links


def _reconcile_book_links(document: Dict[str, Any]) -> None:
    """Clear pointers to missing books, then make each book's links match its pointers."""
    books = document[keys.BOOKS]
    quest_owners: Dict[str, List[str]] = {}
    prompt_owners: Dict[str, List[str]] = {}

    for list_key in keys.QUEST_LIST_KEYS:
        for quest in document[list_key]:
            book_id = quest.get("bookId")
            if book_id is None:
                continue
            if book_id not in books:
                logger.warning(f"Quest '{quest['id']}' points at missing book '{book_id}', unlinking")
                quest["bookId"] = None
                continue
            quest_owners.setdefault(book_id, []).append(quest["id"])

    for prompt in _iter_prompts(document[keys.EXTERNAL_CURRICULUM]):
        book_id = prompt.get("bookId")
        if book_id is None:
            continue
        if book_id not in books:
            logger.warning(f"Prompt '{prompt['id']}' points at missing book '{book_id}', unlinking")
            prompt["bookId"] = None
            continue
        prompt_owners.setdefault(book_id, []).append(prompt["id"])

    for book_id, book in books.items():
        links = book["links"]
        quest_ids = _relink(links["questIds"], quest_owners.get(book_id, []))
        prompt_ids = _relink(links["curriculumPromptIds"], prompt_owners.get(book_id, []))
        if quest_ids != links["questIds"] or prompt_ids != links["curriculumPromptIds"]:
            logger.warning(f"Rebuilt links for book '{book_id}'")
            links["questIds"] = quest_ids
            links["curriculumPromptIds"] = prompt_ids


def validate_document(state: Any) -> Dict[str, Any]:
    """Rebuild the canonical document from the empty skeleton.

    Keys absent from the input keep their defaults; unknown keys are dropped.
    Cross-collection rules are restored afterwards: unique slot and quest
    ids, one placement per item, and book links that match their pointers.
    """
    if not isinstance(state, dict):
        logger.warning("Invalid character state: not an object, using empty state")
        return keys.empty_state()

    validated = keys.empty_state()
    for key, rule in DOCUMENT_RULES.items():
        if key in state:
            validated[key] = rule.validate(state[key])
    _dedupe_slot_ids(validated)
    _reconcile_quest_ids(validated)
    _reconcile_item_placement(validated)
    _reconcile_book_links(validated)
    return validated
