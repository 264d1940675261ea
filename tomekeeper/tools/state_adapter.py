"""
StateAdapter — the single mutation path for an in-memory save document.

The adapter owns one canonical document (migrated by the caller, validated on
construction) and enforces the cross-entity rules on every write:

  - a quest lives in exactly one of the active/completed/discarded lists
  - an item name is in exactly one of inventory, equipped, or a passive slot
  - equipping respects per-category slot limits
  - spending never takes a balance below zero
  - book <-> quest and book <-> prompt links stay symmetric

Not-found and rule violations are ordinary outcomes: methods return None or
False and leave state untouched. Reads always return copies. Each mutation
emits one StateEvent per changed collection, after the write is complete.
"""

import copy
import uuid
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple, Union

from tomekeeper.models import ITEM_TYPES, AtmosphericBuffModel
from tomekeeper.models.base import as_unique_str_list, is_number
from tomekeeper.tools import storage_keys as keys
from tomekeeper.tools.content import ContentRegistry
from tomekeeper.tools.events import EventBus, StateEvent
from tomekeeper.tools.validator import (
    validate_book,
    validate_curse,
    validate_document,
    validate_item,
    validate_quest,
    validate_temporary_buff,
)

logger = logging.getLogger("StateAdapter")

QUEST_STATUS_BY_LIST = {
    keys.ACTIVE_ASSIGNMENTS: "active",
    keys.COMPLETED_QUESTS: "completed",
    keys.DISCARDED_QUESTS: "discarded",
}

INTEGER_COUNTERS = {keys.BUFF_MONTH_COUNTER, keys.DUNGEON_COMPLETION_DRAWS_REDEEMED}

MONTHS_BY_DURATION = {"two-months": 2, "until-end-month": 1, "one-time": 0}

# Emission order when one operation touches several collections.
_EMIT_ORDER = [
    keys.INVENTORY_ITEMS,
    keys.EQUIPPED_ITEMS,
    keys.PASSIVE_ITEM_SLOTS,
    keys.PASSIVE_FAMILIAR_SLOTS,
    keys.ACTIVE_ASSIGNMENTS,
    keys.COMPLETED_QUESTS,
    keys.DISCARDED_QUESTS,
    keys.BOOKS,
    keys.EXTERNAL_CURRICULUM,
]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _valid_index(collection: list, index: Any) -> bool:
    return isinstance(index, int) and not isinstance(index, bool) and 0 <= index < len(collection)


class StateAdapter:
    """Owns one canonical document and every mutation applied to it."""

    def __init__(
        self,
        state: Dict[str, Any],
        content: Optional[ContentRegistry] = None,
        slot_limits: Optional[Dict[str, int]] = None,
    ):
        self._state = validate_document(state)
        self.content = content or ContentRegistry()
        self._slot_limits: Dict[str, int] = {}
        self._events = EventBus()
        if slot_limits:
            self.set_slot_limits(slot_limits)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event: StateEvent, handler: Callable[[Any], None]) -> Callable[[], None]:
        """Subscribe to a change channel. Returns a disposer."""
        return self._events.on(event, handler)

    def off(self, event: StateEvent, handler: Callable[[Any], None]) -> None:
        self._events.off(event, handler)

    def _emit(self, key: str) -> None:
        self._events.emit(StateEvent.for_key(key), self._state[key])

    def _emit_keys(self, changed: Iterable[str]) -> None:
        changed = set(changed)
        for key in _EMIT_ORDER:
            if key in changed:
                self._emit(key)
                changed.discard(key)
        for key in sorted(changed):
            self._emit(key)

    def _copy(self, key: str) -> Any:
        return copy.deepcopy(self._state[key])

    # ------------------------------------------------------------------
    # Genres
    # ------------------------------------------------------------------

    def get_selected_genres(self) -> List[str]:
        return self._copy(keys.SELECTED_GENRES)

    def set_selected_genres(self, genres: Any) -> List[str]:
        sanitized = as_unique_str_list(genres)
        if sanitized != self._state[keys.SELECTED_GENRES]:
            self._state[keys.SELECTED_GENRES] = sanitized
            self._emit(keys.SELECTED_GENRES)
        return self.get_selected_genres()

    def clear_selected_genres(self) -> List[str]:
        return self.set_selected_genres([])

    def get_genre_dice_selection(self) -> str:
        return self._state[keys.GENRE_DICE_SELECTION]

    def set_genre_dice_selection(self, dice: Any) -> Optional[str]:
        if dice not in keys.DICE_TYPES:
            logger.warning(f"Rejected genre dice selection: {dice!r}")
            return None
        if dice != self._state[keys.GENRE_DICE_SELECTION]:
            self._state[keys.GENRE_DICE_SELECTION] = dice
            self._emit(keys.GENRE_DICE_SELECTION)
        return dice

    # ------------------------------------------------------------------
    # Quests
    # ------------------------------------------------------------------

    def _quest_ids(self) -> Set[str]:
        return {q["id"] for key in keys.QUEST_LIST_KEYS for q in self._state[key] if q.get("id")}

    def _find_quest(self, quest_id: Any) -> Optional[Tuple[str, int]]:
        if not isinstance(quest_id, str):
            return None
        for key in keys.QUEST_LIST_KEYS:
            for index, quest in enumerate(self._state[key]):
                if quest.get("id") == quest_id:
                    return key, index
        return None

    def _prepare_quest(self, quest: Any, list_key: str) -> Optional[Dict[str, Any]]:
        validated = validate_quest(quest, f"new quest for {list_key}")
        if validated is None:
            return None
        validated["id"] = validated["id"] or str(uuid.uuid4())
        validated["dateAdded"] = validated["dateAdded"] or _now()
        validated["status"] = QUEST_STATUS_BY_LIST[list_key]
        if list_key == keys.COMPLETED_QUESTS and not validated["dateCompleted"]:
            validated["dateCompleted"] = _now()
        book_id = validated.get("bookId")
        if book_id and book_id not in self._state[keys.BOOKS]:
            logger.warning(f"Quest {validated['id']} references unknown book {book_id}; unlinking")
            validated["bookId"] = None
        return validated

    def _add_quests(self, list_key: str, quests: Any):
        single = not isinstance(quests, list)
        candidates = [quests] if single else quests
        existing_ids = self._quest_ids()

        added = []
        for candidate in candidates:
            prepared = self._prepare_quest(candidate, list_key)
            if prepared is None:
                continue
            if prepared["id"] in existing_ids:
                logger.warning(f"Quest id {prepared['id']} already exists; not added")
                continue
            existing_ids.add(prepared["id"])
            added.append(prepared)

        if not added:
            return None if single else []

        self._state[list_key].extend(added)
        changed = {list_key}
        for quest in added:
            if self._relink_quest_book(quest["id"], None, quest.get("bookId")):
                changed.add(keys.BOOKS)
        self._emit_keys(changed)

        copies = copy.deepcopy(added)
        return copies[0] if single else copies

    def add_active_quests(self, quests):
        """Add one quest (dict) or many (list). Returns copies, or None/[] if nothing was added."""
        return self._add_quests(keys.ACTIVE_ASSIGNMENTS, quests)

    def add_completed_quests(self, quests):
        return self._add_quests(keys.COMPLETED_QUESTS, quests)

    def add_discarded_quests(self, quests):
        return self._add_quests(keys.DISCARDED_QUESTS, quests)

    def get_active_quests(self) -> List[Dict[str, Any]]:
        return self._copy(keys.ACTIVE_ASSIGNMENTS)

    def get_completed_quests(self) -> List[Dict[str, Any]]:
        return self._copy(keys.COMPLETED_QUESTS)

    def get_discarded_quests(self) -> List[Dict[str, Any]]:
        return self._copy(keys.DISCARDED_QUESTS)

    def get_quest(self, quest_id: str) -> Optional[Dict[str, Any]]:
        found = self._find_quest(quest_id)
        if found is None:
            return None
        list_key, index = found
        return copy.deepcopy(self._state[list_key][index])

    def update_quest(self, list_key: str, index: int, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Merge `updates` into a quest. Identity and list status are not patchable."""
        if list_key not in QUEST_STATUS_BY_LIST or not isinstance(updates, dict):
            return None
        quests = self._state[list_key]
        if not _valid_index(quests, index):
            return None

        current = quests[index]
        merged = {**current, **updates, "id": current["id"], "status": QUEST_STATUS_BY_LIST[list_key]}
        validated = validate_quest(merged, f"{list_key}[{index}] update")
        if validated is None:
            return None
        new_book = validated.get("bookId")
        if new_book and new_book not in self._state[keys.BOOKS]:
            logger.warning(f"Quest update references unknown book {new_book}")
            return None

        quests[index] = validated
        changed = {list_key}
        if self._relink_quest_book(current["id"], current.get("bookId"), new_book):
            changed.add(keys.BOOKS)
        self._emit_keys(changed)
        return copy.deepcopy(validated)

    def update_quest_by_id(self, quest_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        found = self._find_quest(quest_id)
        if found is None:
            return None
        return self.update_quest(found[0], found[1], updates)

    def move_quest(
        self,
        from_key: str,
        index: int,
        to_key: str,
        transform: Optional[Callable[[Dict[str, Any]], Dict[str, Any]]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Move a quest between lists, optionally reshaping it on the way.

        The quest keeps its id; its status follows the destination list.
        """
        if from_key not in QUEST_STATUS_BY_LIST or to_key not in QUEST_STATUS_BY_LIST or from_key == to_key:
            return None
        source = self._state[from_key]
        if not _valid_index(source, index):
            return None

        current = source[index]
        moved = copy.deepcopy(current)
        if transform is not None:
            moved = transform(moved)
            if not isinstance(moved, dict):
                return None
        moved["id"] = current["id"]
        moved["status"] = QUEST_STATUS_BY_LIST[to_key]
        if to_key == keys.COMPLETED_QUESTS and not moved.get("dateCompleted"):
            moved["dateCompleted"] = _now()
        validated = validate_quest(moved, f"{from_key}[{index}] -> {to_key}")
        if validated is None:
            return None
        new_book = validated.get("bookId")
        if new_book and new_book not in self._state[keys.BOOKS]:
            return None

        del source[index]
        self._state[to_key].append(validated)
        changed = {from_key, to_key}
        if self._relink_quest_book(current["id"], current.get("bookId"), new_book):
            changed.add(keys.BOOKS)
        self._emit_keys(changed)
        return copy.deepcopy(validated)

    def complete_quest(self, quest_id: str, rewards: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """Active -> completed, optionally finalizing the rewards payload."""
        found = self._find_quest(quest_id)
        if found is None or found[0] != keys.ACTIVE_ASSIGNMENTS:
            return None

        def finalize(quest):
            if isinstance(rewards, dict):
                quest["rewards"] = rewards
            return quest

        return self.move_quest(keys.ACTIVE_ASSIGNMENTS, found[1], keys.COMPLETED_QUESTS, finalize)

    def discard_quest(self, quest_id: str) -> Optional[Dict[str, Any]]:
        found = self._find_quest(quest_id)
        if found is None or found[0] != keys.ACTIVE_ASSIGNMENTS:
            return None
        return self.move_quest(keys.ACTIVE_ASSIGNMENTS, found[1], keys.DISCARDED_QUESTS)

    def remove_quest(self, list_key: str, index: int) -> bool:
        if list_key not in QUEST_STATUS_BY_LIST or not _valid_index(self._state[list_key], index):
            return False
        removed = self._state[list_key].pop(index)
        changed = {list_key}
        if self._relink_quest_book(removed["id"], removed.get("bookId"), None):
            changed.add(keys.BOOKS)
        self._emit_keys(changed)
        return True

    def delete_quest(self, quest_id: str) -> bool:
        found = self._find_quest(quest_id)
        if found is None:
            return False
        return self.remove_quest(*found)

    def link_book_to_quest(self, quest_id: str, book_id: Optional[str]) -> Optional[Dict[str, Any]]:
        """Set or clear a quest's book; the book's questIds follow."""
        found = self._find_quest(quest_id)
        if found is None:
            return None
        if book_id is not None and book_id not in self._state[keys.BOOKS]:
            return None

        list_key, index = found
        quest = self._state[list_key][index]
        previous = quest.get("bookId")
        if previous == book_id:
            return copy.deepcopy(quest)
        quest["bookId"] = book_id
        changed = {list_key}
        if self._relink_quest_book(quest_id, previous, book_id):
            changed.add(keys.BOOKS)
        self._emit_keys(changed)
        return copy.deepcopy(quest)

    def _relink_quest_book(self, quest_id: str, old_book_id: Optional[str], new_book_id: Optional[str]) -> bool:
        """Move a quest id between books' questIds. Returns True if any book changed."""
        if not quest_id:
            return False
        books = self._state[keys.BOOKS]
        changed = False
        if old_book_id and old_book_id != new_book_id and old_book_id in books:
            quest_ids = books[old_book_id]["links"]["questIds"]
            if quest_id in quest_ids:
                quest_ids.remove(quest_id)
                changed = True
        if new_book_id and new_book_id in books:
            quest_ids = books[new_book_id]["links"]["questIds"]
            if quest_id not in quest_ids:
                quest_ids.append(quest_id)
                changed = True
        return changed

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def get_inventory_items(self) -> List[Dict[str, Any]]:
        return [self.content.hydrate_item(item) for item in self._copy(keys.INVENTORY_ITEMS)]

    def get_equipped_items(self) -> List[Dict[str, Any]]:
        return [self.content.hydrate_item(item) for item in self._copy(keys.EQUIPPED_ITEMS)]

    def get_owned_item_names(self) -> Set[str]:
        names = {item["name"] for item in self._state[keys.INVENTORY_ITEMS]}
        names.update(item["name"] for item in self._state[keys.EQUIPPED_ITEMS])
        for slot_key in keys.PASSIVE_SLOT_KEYS:
            names.update(slot["itemName"] for slot in self._state[slot_key] if slot.get("itemName"))
        return names

    def _item_category(self, item: Dict[str, Any]) -> str:
        return self.content.item_type(item.get("name")) or item.get("type", "")

    def _item_record(self, name: str) -> Dict[str, Any]:
        """Stored record for a name: an existing one if held, else built from content."""
        for key in (keys.INVENTORY_ITEMS, keys.EQUIPPED_ITEMS):
            for item in self._state[key]:
                if item["name"] == name:
                    return copy.deepcopy(item)
        canonical = self.content.get_item(name) or {}
        return validate_item({**canonical, "name": name}) or {"name": name, "type": "", "img": "", "bonus": ""}

    def add_inventory_item(self, item: Union[str, Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Add a new item by name or record. Fails if the name is already owned anywhere."""
        if isinstance(item, str):
            item = {"name": item}
        validated = validate_item(item, "new inventory item")
        if validated is None:
            return None
        if validated["name"] in self.get_owned_item_names():
            logger.warning(f"Item already owned: {validated['name']}")
            return None
        if not validated["type"]:
            validated["type"] = self.content.item_type(validated["name"])
        self._state[keys.INVENTORY_ITEMS].append(validated)
        self._emit(keys.INVENTORY_ITEMS)
        return self.content.hydrate_item(copy.deepcopy(validated))

    def remove_inventory_item(self, index: int) -> bool:
        if not _valid_index(self._state[keys.INVENTORY_ITEMS], index):
            return False
        del self._state[keys.INVENTORY_ITEMS][index]
        self._emit(keys.INVENTORY_ITEMS)
        return True

    def remove_equipped_item(self, index: int) -> bool:
        if not _valid_index(self._state[keys.EQUIPPED_ITEMS], index):
            return False
        del self._state[keys.EQUIPPED_ITEMS][index]
        self._emit(keys.EQUIPPED_ITEMS)
        return True

    def set_slot_limits(self, limits: Dict[str, Any]) -> Dict[str, int]:
        """Equip capacity per item category. Categories without a limit are unlimited."""
        sanitized = {}
        for category, limit in (limits or {}).items():
            if category not in ITEM_TYPES or not is_number(limit):
                logger.warning(f"Ignoring slot limit {category!r}={limit!r}")
                continue
            sanitized[category] = max(0, int(limit))
        self._slot_limits = sanitized
        return self.get_slot_limits()

    def get_slot_limits(self) -> Dict[str, int]:
        return dict(self._slot_limits)

    def _has_equip_capacity(self, item: Dict[str, Any]) -> bool:
        category = self._item_category(item)
        limit = self._slot_limits.get(category)
        if limit is None:
            return True
        used = sum(1 for e in self._state[keys.EQUIPPED_ITEMS] if self._item_category(e) == category)
        return used < limit

    def move_inventory_item_to_equipped(self, index: int) -> bool:
        inventory = self._state[keys.INVENTORY_ITEMS]
        if not _valid_index(inventory, index):
            return False
        item = inventory[index]
        if not self._has_equip_capacity(item):
            logger.info(f"No empty {self._item_category(item) or 'item'} slot for {item['name']}")
            return False
        self._emit_keys(self._place_item(copy.deepcopy(item), keys.EQUIPPED_ITEMS))
        return True

    def equip_item(self, name: str) -> bool:
        for index, item in enumerate(self._state[keys.INVENTORY_ITEMS]):
            if item["name"] == name:
                return self.move_inventory_item_to_equipped(index)
        return False

    def move_equipped_item_to_inventory(self, index: int) -> bool:
        equipped = self._state[keys.EQUIPPED_ITEMS]
        if not _valid_index(equipped, index):
            return False
        self._emit_keys(self._place_item(copy.deepcopy(equipped[index]), keys.INVENTORY_ITEMS))
        return True

    def unequip_item(self, name: str) -> bool:
        for index, item in enumerate(self._state[keys.EQUIPPED_ITEMS]):
            if item["name"] == name:
                return self.move_equipped_item_to_inventory(index)
        return False

    def _place_item(
        self,
        item: Dict[str, Any],
        target_key: str,
        slot: Optional[Dict[str, Any]] = None,
    ) -> Set[str]:
        """Exclusive placement: strip the name from every location, then write
        the new one. A slot's previous occupant goes back to inventory.

        Returns the set of storage keys that changed.
        """
        name = item["name"]
        changed: Set[str] = set()

        for key in (keys.INVENTORY_ITEMS, keys.EQUIPPED_ITEMS):
            kept = [i for i in self._state[key] if i["name"] != name]
            if len(kept) != len(self._state[key]):
                self._state[key] = kept
                changed.add(key)
        for slot_key in keys.PASSIVE_SLOT_KEYS:
            for other in self._state[slot_key]:
                if other is not slot and other.get("itemName") == name:
                    other["itemName"] = None
                    changed.add(slot_key)

        if slot is None:
            self._state[target_key].append(item)
            changed.add(target_key)
            return changed

        displaced = slot.get("itemName")
        slot["itemName"] = name
        changed.add(target_key)
        if displaced and displaced != name:
            self._state[keys.INVENTORY_ITEMS].append(self._item_record(displaced))
            changed.add(keys.INVENTORY_ITEMS)
        return changed

    # ------------------------------------------------------------------
    # Passive slots
    # ------------------------------------------------------------------

    def _find_slot(self, slot_id: Any) -> Optional[Tuple[str, Dict[str, Any]]]:
        for slot_key in keys.PASSIVE_SLOT_KEYS:
            for slot in self._state[slot_key]:
                if slot["slotId"] == slot_id:
                    return slot_key, slot
        return None

    def _add_slot(self, slot_key: str, slot_id: Any, unlocked_from: Optional[str]) -> Optional[Dict[str, Any]]:
        if not isinstance(slot_id, str) or not slot_id.strip():
            return None
        slot_id = slot_id.strip()
        if self._find_slot(slot_id) is not None:
            logger.warning(f"Passive slot already exists: {slot_id}")
            return None
        slot = {"slotId": slot_id, "itemName": None, "unlockedFrom": unlocked_from or None}
        self._state[slot_key].append(slot)
        self._emit(slot_key)
        return dict(slot)

    def add_passive_item_slot(self, slot_id: str, unlocked_from: Optional[str] = None) -> Optional[Dict[str, Any]]:
        return self._add_slot(keys.PASSIVE_ITEM_SLOTS, slot_id, unlocked_from)

    def add_passive_familiar_slot(self, slot_id: str, unlocked_from: Optional[str] = None) -> Optional[Dict[str, Any]]:
        return self._add_slot(keys.PASSIVE_FAMILIAR_SLOTS, slot_id, unlocked_from)

    def get_passive_item_slots(self) -> List[Dict[str, Any]]:
        return self._copy(keys.PASSIVE_ITEM_SLOTS)

    def get_passive_familiar_slots(self) -> List[Dict[str, Any]]:
        return self._copy(keys.PASSIVE_FAMILIAR_SLOTS)

    def _set_slot_item(self, slot_key: str, slot_id: str, name: Optional[str]) -> bool:
        found = self._find_slot(slot_id)
        if found is None or found[0] != slot_key:
            return False
        slot = found[1]

        if name is None:
            displaced = slot.get("itemName")
            if not displaced:
                return True
            slot["itemName"] = None
            self._state[keys.INVENTORY_ITEMS].append(self._item_record(displaced))
            self._emit_keys({slot_key, keys.INVENTORY_ITEMS})
            return True

        if name not in self.get_owned_item_names():
            logger.warning(f"Cannot place unowned item in slot {slot_id}: {name}")
            return False
        record = self._item_record(name)
        is_familiar = self._item_category(record) == "Familiar"
        if is_familiar != (slot_key == keys.PASSIVE_FAMILIAR_SLOTS):
            logger.warning(f"Item {name} does not fit slot {slot_id}")
            return False
        if slot.get("itemName") == name:
            return True

        self._emit_keys(self._place_item(record, slot_key, slot))
        return True

    def set_passive_slot_item(self, slot_id: str, name: Optional[str]) -> bool:
        """Display an owned non-familiar item (or clear the slot with None)."""
        return self._set_slot_item(keys.PASSIVE_ITEM_SLOTS, slot_id, name)

    def set_passive_familiar_slot_item(self, slot_id: str, name: Optional[str]) -> bool:
        """Adopt an owned familiar into a slot (or clear it with None)."""
        return self._set_slot_item(keys.PASSIVE_FAMILIAR_SLOTS, slot_id, name)

    def remove_passive_slot(self, slot_id: str) -> bool:
        found = self._find_slot(slot_id)
        if found is None:
            return False
        slot_key, slot = found
        self._state[slot_key] = [s for s in self._state[slot_key] if s is not slot]
        changed = {slot_key}
        if slot.get("itemName"):
            self._state[keys.INVENTORY_ITEMS].append(self._item_record(slot["itemName"]))
            changed.add(keys.INVENTORY_ITEMS)
        self._emit_keys(changed)
        return True

    # ------------------------------------------------------------------
    # Currencies and counters
    # ------------------------------------------------------------------

    def _valid_amount(self, key: str, amount: Any) -> bool:
        if key not in keys.COUNTER_KEYS or not is_number(amount) or amount < 0:
            return False
        if key in INTEGER_COUNTERS and not float(amount).is_integer():
            return False
        return True

    def get_currency(self, key: str) -> Optional[Union[int, float]]:
        if key not in keys.COUNTER_KEYS:
            return None
        return self._state[key]

    def add_currency(self, key: str, amount: Union[int, float]) -> Optional[Union[int, float]]:
        """Returns the new balance, or None for an unknown key or invalid amount."""
        if not self._valid_amount(key, amount):
            return None
        if key in INTEGER_COUNTERS:
            amount = int(amount)
        if amount:
            self._state[key] = self._state[key] + amount
            self._emit(key)
        return self._state[key]

    def spend_currency(self, key: str, amount: Union[int, float]) -> bool:
        """The one place insufficient funds is checked. No partial spends."""
        if not self._valid_amount(key, amount):
            return False
        if self._state[key] < amount:
            logger.info(f"Not enough {key}: have {self._state[key]}, need {amount}")
            return False
        if amount:
            self._state[key] = self._state[key] - (int(amount) if key in INTEGER_COUNTERS else amount)
            self._emit(key)
        return True

    def get_dusty_blueprints(self) -> Union[int, float]:
        return self._state[keys.DUSTY_BLUEPRINTS]

    def add_dusty_blueprints(self, amount: Union[int, float]) -> Optional[Union[int, float]]:
        return self.add_currency(keys.DUSTY_BLUEPRINTS, amount)

    def spend_dusty_blueprints(self, amount: Union[int, float]) -> bool:
        return self.spend_currency(keys.DUSTY_BLUEPRINTS, amount)

    def increment_buff_month_counter(self) -> int:
        return self.add_currency(keys.BUFF_MONTH_COUNTER, 1)

    def redeem_dungeon_completion_draw(self) -> int:
        return self.add_currency(keys.DUNGEON_COMPLETION_DRAWS_REDEEMED, 1)

    # ------------------------------------------------------------------
    # Restoration progress
    # ------------------------------------------------------------------

    def _append_unique(self, key: str, value: Any) -> bool:
        if is_number(value) and float(value).is_integer():
            value = str(int(value))
        if not isinstance(value, str) or not value.strip() or value.strip() in self._state[key]:
            return False
        self._state[key].append(value.strip())
        self._emit(key)
        return True

    def complete_restoration_project(self, project_id: str) -> bool:
        return self._append_unique(keys.COMPLETED_RESTORATION_PROJECTS, project_id)

    def is_restoration_project_completed(self, project_id: str) -> bool:
        return project_id in self._state[keys.COMPLETED_RESTORATION_PROJECTS]

    def get_completed_restoration_projects(self) -> List[str]:
        return self._copy(keys.COMPLETED_RESTORATION_PROJECTS)

    def complete_wing(self, wing_id: str) -> bool:
        return self._append_unique(keys.COMPLETED_WINGS, wing_id)

    def is_wing_completed(self, wing_id: str) -> bool:
        return str(wing_id) in self._state[keys.COMPLETED_WINGS]

    def get_completed_wings(self) -> List[str]:
        return self._copy(keys.COMPLETED_WINGS)

    def claim_room_reward(self, room_number: Union[str, int]) -> bool:
        return self._append_unique(keys.CLAIMED_ROOM_REWARDS, room_number)

    def get_claimed_room_rewards(self) -> List[str]:
        return self._copy(keys.CLAIMED_ROOM_REWARDS)

    # ------------------------------------------------------------------
    # Curses
    # ------------------------------------------------------------------

    def add_active_curse(self, curse: Union[str, Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if isinstance(curse, str):
            curse = {"name": curse}
        if isinstance(curse, dict) and not curse.get("requirement"):
            definition = self.content.curse(curse.get("name"))
            if definition is not None:
                curse = {**curse, "requirement": definition.requirement}
        validated = validate_curse(curse, "new curse")
        if validated is None:
            return None
        self._state[keys.ACTIVE_CURSES].append(validated)
        self._emit(keys.ACTIVE_CURSES)
        return dict(validated)

    def get_active_curses(self) -> List[Dict[str, Any]]:
        return self._copy(keys.ACTIVE_CURSES)

    def get_completed_curses(self) -> List[Dict[str, Any]]:
        return self._copy(keys.COMPLETED_CURSES)

    def update_active_curse(self, index: int, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        curses = self._state[keys.ACTIVE_CURSES]
        if not _valid_index(curses, index) or not isinstance(updates, dict):
            return None
        validated = validate_curse({**curses[index], **updates}, f"activeCurses[{index}] update")
        if validated is None:
            return None
        curses[index] = validated
        self._emit(keys.ACTIVE_CURSES)
        return dict(validated)

    def remove_active_curse(self, index: int) -> bool:
        if not _valid_index(self._state[keys.ACTIVE_CURSES], index):
            return False
        del self._state[keys.ACTIVE_CURSES][index]
        self._emit(keys.ACTIVE_CURSES)
        return True

    def move_curse_to_completed(self, index: int) -> Optional[Dict[str, Any]]:
        if not _valid_index(self._state[keys.ACTIVE_CURSES], index):
            return None
        curse = self._state[keys.ACTIVE_CURSES].pop(index)
        self._state[keys.COMPLETED_CURSES].append(curse)
        self._emit(keys.ACTIVE_CURSES)
        self._emit(keys.COMPLETED_CURSES)
        return dict(curse)

    def remove_completed_curse(self, index: int) -> bool:
        if not _valid_index(self._state[keys.COMPLETED_CURSES], index):
            return False
        del self._state[keys.COMPLETED_CURSES][index]
        self._emit(keys.COMPLETED_CURSES)
        return True

    # ------------------------------------------------------------------
    # Buffs
    # ------------------------------------------------------------------

    def add_temporary_buff(self, buff: Union[str, Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Add a buff, filling description/duration from content when the
        caller omits them. monthsRemaining defaults from the duration."""
        if isinstance(buff, str):
            buff = {"name": buff}
        if not isinstance(buff, dict):
            return None
        definition = self.content.temporary_buff(buff.get("name"))
        if definition is not None:
            buff = {"description": definition.description, "duration": definition.duration, **buff}
        validated = validate_temporary_buff(buff, "new temporary buff")
        if validated is None:
            return None
        if "monthsRemaining" not in buff:
            validated["monthsRemaining"] = MONTHS_BY_DURATION[validated["duration"]]
        self._state[keys.TEMPORARY_BUFFS].append(validated)
        self._emit(keys.TEMPORARY_BUFFS)
        return dict(validated)

    def get_temporary_buffs(self) -> List[Dict[str, Any]]:
        return self._copy(keys.TEMPORARY_BUFFS)

    def update_temporary_buff(self, index: int, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        buffs = self._state[keys.TEMPORARY_BUFFS]
        if not _valid_index(buffs, index) or not isinstance(updates, dict):
            return None
        validated = validate_temporary_buff({**buffs[index], **updates}, f"temporaryBuffs[{index}] update")
        if validated is None:
            return None
        buffs[index] = validated
        self._emit(keys.TEMPORARY_BUFFS)
        return dict(validated)

    def remove_temporary_buff(self, index: int) -> bool:
        if not _valid_index(self._state[keys.TEMPORARY_BUFFS], index):
            return False
        del self._state[keys.TEMPORARY_BUFFS][index]
        self._emit(keys.TEMPORARY_BUFFS)
        return True

    def get_atmospheric_buffs(self) -> Dict[str, Dict[str, Any]]:
        return self._copy(keys.ATMOSPHERIC_BUFFS)

    def update_atmospheric_buff(self, name: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Patch (or create) the named atmospheric buff."""
        if not isinstance(name, str) or not name.strip() or not isinstance(updates, dict):
            return None
        current = self._state[keys.ATMOSPHERIC_BUFFS].get(name, {})
        merged = AtmosphericBuffModel.model_validate({**current, **updates}).to_json_dict()
        if merged != current:
            self._state[keys.ATMOSPHERIC_BUFFS][name] = merged
            self._emit(keys.ATMOSPHERIC_BUFFS)
        return dict(merged)

    def set_atmospheric_buff_days_used(self, name: str, days_used: int) -> Optional[Dict[str, Any]]:
        if not is_number(days_used) or days_used < 0:
            return None
        return self.update_atmospheric_buff(name, {"daysUsed": days_used})

    def set_atmospheric_buff_active(self, name: str, is_active: bool) -> Optional[Dict[str, Any]]:
        if not isinstance(is_active, bool):
            return None
        return self.update_atmospheric_buff(name, {"isActive": is_active})

    # ------------------------------------------------------------------
    # Abilities
    # ------------------------------------------------------------------

    def add_learned_ability(self, name: str) -> bool:
        if not isinstance(name, str) or not name.strip():
            return False
        if name.strip() in self._state[keys.LEARNED_ABILITIES]:
            return False
        self._state[keys.LEARNED_ABILITIES].append(name.strip())
        self._emit(keys.LEARNED_ABILITIES)
        return True

    def remove_learned_ability(self, name: str) -> bool:
        if name not in self._state[keys.LEARNED_ABILITIES]:
            return False
        self._state[keys.LEARNED_ABILITIES].remove(name)
        self._emit(keys.LEARNED_ABILITIES)
        return True

    def get_learned_abilities(self) -> List[str]:
        return self._copy(keys.LEARNED_ABILITIES)

    # ------------------------------------------------------------------
    # Books
    # ------------------------------------------------------------------

    def add_book(self, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Create a book. An id and dateAdded are assigned when missing; links start
        empty and are only changed by the linking operations."""
        if not isinstance(data, dict):
            return None
        draft = {**data}
        draft["id"] = draft.get("id") or str(uuid.uuid4())
        draft["dateAdded"] = draft.get("dateAdded") or _now()
        draft["links"] = {"questIds": [], "curriculumPromptIds": []}
        validated = validate_book(draft, "new book")
        if validated is None:
            return None
        if validated["id"] in self._state[keys.BOOKS]:
            logger.warning(f"Book id already exists: {validated['id']}")
            return None
        if validated["status"] == "completed" and not validated["dateCompleted"]:
            validated["dateCompleted"] = _now()
        self._state[keys.BOOKS][validated["id"]] = validated
        self._emit(keys.BOOKS)
        return copy.deepcopy(validated)

    def get_book(self, book_id: str) -> Optional[Dict[str, Any]]:
        book = self._state[keys.BOOKS].get(book_id)
        return copy.deepcopy(book) if book is not None else None

    def get_books(self) -> List[Dict[str, Any]]:
        return list(self._copy(keys.BOOKS).values())

    def get_books_by_status(self, status: str) -> List[Dict[str, Any]]:
        return [b for b in self.get_books() if b["status"] == status]

    def update_book(self, book_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Patch a book. Links are managed by the link operations, not here.

        Moving into 'completed' stamps dateCompleted; moving out clears it.
        """
        current = self._state[keys.BOOKS].get(book_id)
        if current is None or not isinstance(updates, dict):
            return None
        merged = {**current, **updates, "id": book_id, "links": current["links"]}
        validated = validate_book(merged, f"books[{book_id}] update")
        if validated is None:
            return None
        if validated["status"] == "completed" and current["status"] != "completed":
            validated["dateCompleted"] = updates.get("dateCompleted") or _now()
        elif validated["status"] != "completed" and current["status"] == "completed":
            validated["dateCompleted"] = None
        self._state[keys.BOOKS][book_id] = validated
        self._emit(keys.BOOKS)
        return copy.deepcopy(validated)

    def mark_book_complete(self, book_id: str) -> Optional[Dict[str, Any]]:
        book = self._state[keys.BOOKS].get(book_id)
        if book is None:
            return None
        if book["status"] == "completed":
            return copy.deepcopy(book)
        return self.update_book(book_id, {"status": "completed"})

    def delete_book(self, book_id: str) -> bool:
        """Remove a book and clear every quest/prompt that pointed at it."""
        if book_id not in self._state[keys.BOOKS]:
            return False
        del self._state[keys.BOOKS][book_id]
        changed = {keys.BOOKS}
        for list_key in keys.QUEST_LIST_KEYS:
            for quest in self._state[list_key]:
                if quest.get("bookId") == book_id:
                    quest["bookId"] = None
                    changed.add(list_key)
        for _, _, prompt in self._iter_prompts():
            if prompt.get("bookId") == book_id:
                prompt["bookId"] = None
                changed.add(keys.EXTERNAL_CURRICULUM)
        self._emit_keys(changed)
        return True

    # ------------------------------------------------------------------
    # External curriculum
    # ------------------------------------------------------------------

    @property
    def _curriculums(self) -> Dict[str, Dict[str, Any]]:
        return self._state[keys.EXTERNAL_CURRICULUM].setdefault("curriculums", {})

    def _iter_prompts(self):
        for curriculum in self._curriculums.values():
            for category in curriculum["categories"].values():
                for prompt in category["prompts"].values():
                    yield curriculum, category, prompt

    def _find_prompt(self, prompt_id: Any) -> Optional[Tuple[Dict[str, Any], Dict[str, Any], Dict[str, Any]]]:
        for curriculum, category, prompt in self._iter_prompts():
            if prompt["id"] == prompt_id:
                return curriculum, category, prompt
        return None

    def _unlink_prompts(self, prompts: Iterable[Dict[str, Any]]) -> bool:
        """Drop the given prompts from their books' curriculumPromptIds."""
        changed = False
        books = self._state[keys.BOOKS]
        for prompt in prompts:
            book = books.get(prompt.get("bookId"))
            if book and prompt["id"] in book["links"]["curriculumPromptIds"]:
                book["links"]["curriculumPromptIds"].remove(prompt["id"])
                changed = True
        return changed

    def get_external_curriculum(self) -> Dict[str, Any]:
        return self._copy(keys.EXTERNAL_CURRICULUM)

    def add_curriculum(self, name: str) -> Optional[Dict[str, Any]]:
        if not isinstance(name, str) or not name.strip():
            return None
        curriculum = {"id": str(uuid.uuid4()), "name": name.strip(), "categories": {}}
        self._curriculums[curriculum["id"]] = curriculum
        self._emit(keys.EXTERNAL_CURRICULUM)
        return copy.deepcopy(curriculum)

    def update_curriculum(self, curriculum_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        curriculum = self._curriculums.get(curriculum_id)
        if curriculum is None or not isinstance(updates, dict):
            return None
        name = updates.get("name")
        if isinstance(name, str) and name.strip():
            curriculum["name"] = name.strip()
            self._emit(keys.EXTERNAL_CURRICULUM)
        return copy.deepcopy(curriculum)

    def delete_curriculum(self, curriculum_id: str) -> bool:
        """Cascade: categories and prompts go with it; linked books are unlinked."""
        curriculum = self._curriculums.pop(curriculum_id, None)
        if curriculum is None:
            return False
        prompts = [p for c in curriculum["categories"].values() for p in c["prompts"].values()]
        changed = {keys.EXTERNAL_CURRICULUM}
        if self._unlink_prompts(prompts):
            changed.add(keys.BOOKS)
        self._emit_keys(changed)
        return True

    def add_category(self, curriculum_id: str, name: str) -> Optional[Dict[str, Any]]:
        curriculum = self._curriculums.get(curriculum_id)
        if curriculum is None or not isinstance(name, str) or not name.strip():
            return None
        category = {"id": str(uuid.uuid4()), "name": name.strip(), "prompts": {}}
        curriculum["categories"][category["id"]] = category
        self._emit(keys.EXTERNAL_CURRICULUM)
        return copy.deepcopy(category)

    def update_category(self, curriculum_id: str, category_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        curriculum = self._curriculums.get(curriculum_id)
        category = curriculum["categories"].get(category_id) if curriculum else None
        if category is None or not isinstance(updates, dict):
            return None
        name = updates.get("name")
        if isinstance(name, str) and name.strip():
            category["name"] = name.strip()
            self._emit(keys.EXTERNAL_CURRICULUM)
        return copy.deepcopy(category)

    def delete_category(self, curriculum_id: str, category_id: str) -> bool:
        curriculum = self._curriculums.get(curriculum_id)
        if curriculum is None or category_id not in curriculum["categories"]:
            return False
        category = curriculum["categories"].pop(category_id)
        changed = {keys.EXTERNAL_CURRICULUM}
        if self._unlink_prompts(category["prompts"].values()):
            changed.add(keys.BOOKS)
        self._emit_keys(changed)
        return True

    def add_prompts(self, curriculum_id: str, category_id: str, texts: List[str]) -> List[Dict[str, Any]]:
        """Batch-add prompts; blank or non-string texts are skipped. One event."""
        curriculum = self._curriculums.get(curriculum_id)
        category = curriculum["categories"].get(category_id) if curriculum else None
        if category is None or not isinstance(texts, list):
            return []
        added = []
        for text in texts:
            if not isinstance(text, str) or not text.strip():
                continue
            prompt = {"id": str(uuid.uuid4()), "text": text.strip(), "bookId": None, "completedAt": None}
            category["prompts"][prompt["id"]] = prompt
            added.append(prompt)
        if added:
            self._emit(keys.EXTERNAL_CURRICULUM)
        return copy.deepcopy(added)

    def update_prompt(self, prompt_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Edit a prompt's text. Book links go through link_book_to_prompt."""
        found = self._find_prompt(prompt_id)
        if found is None or not isinstance(updates, dict):
            return None
        prompt = found[2]
        text = updates.get("text")
        if isinstance(text, str) and text.strip() and text.strip() != prompt["text"]:
            prompt["text"] = text.strip()
            self._emit(keys.EXTERNAL_CURRICULUM)
        return copy.deepcopy(prompt)

    def delete_prompt(self, prompt_id: str) -> bool:
        found = self._find_prompt(prompt_id)
        if found is None:
            return False
        _, category, prompt = found
        del category["prompts"][prompt_id]
        changed = {keys.EXTERNAL_CURRICULUM}
        if self._unlink_prompts([prompt]):
            changed.add(keys.BOOKS)
        self._emit_keys(changed)
        return True

    def link_book_to_prompt(self, prompt_id: str, book_id: Optional[str]) -> Optional[Dict[str, Any]]:
        """Set or clear a prompt's book, keeping curriculumPromptIds symmetric."""
        found = self._find_prompt(prompt_id)
        if found is None:
            return None
        books = self._state[keys.BOOKS]
        if book_id is not None and book_id not in books:
            return None

        prompt = found[2]
        previous = prompt.get("bookId")
        if previous == book_id:
            return copy.deepcopy(prompt)
        changed = {keys.EXTERNAL_CURRICULUM}
        if self._unlink_prompts([prompt]):
            changed.add(keys.BOOKS)
        prompt["bookId"] = book_id
        if book_id is not None:
            prompt_ids = books[book_id]["links"]["curriculumPromptIds"]
            if prompt_id not in prompt_ids:
                prompt_ids.append(prompt_id)
                changed.add(keys.BOOKS)
        self._emit_keys(changed)
        return copy.deepcopy(prompt)

    def mark_prompt_complete(self, prompt_id: str) -> Optional[Dict[str, Any]]:
        found = self._find_prompt(prompt_id)
        if found is None:
            return None
        prompt = found[2]
        if not prompt.get("completedAt"):
            prompt["completedAt"] = _now()
            self._emit(keys.EXTERNAL_CURRICULUM)
        return copy.deepcopy(prompt)

    # ------------------------------------------------------------------
    # Whole document
    # ------------------------------------------------------------------

    def to_document(self) -> Dict[str, Any]:
        return copy.deepcopy(self._state)

    def get_field(self, key: str) -> Any:
        """Copy of one top-level collection, or None for an unknown key."""
        if key not in self._state:
            return None
        return self._copy(key)

    def load_document(self, document: Any) -> List[str]:
        """Replace state key by key from a (re)validated document.

        Emits one event per key whose value actually changed and returns
        those keys.
        """
        validated = validate_document(document)
        changed = []
        for key in keys.STATE_KEYS:
            if self._state.get(key) != validated[key]:
                self._state[key] = validated[key]
                changed.append(key)
        for key in changed:
            self._emit(key)
        return changed
