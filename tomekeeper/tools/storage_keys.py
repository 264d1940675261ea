"""
Storage keys and the empty canonical document.

Key names are the persisted JSON names and must not change: existing saves
and exported files are keyed by them.
"""

import copy
from typing import Any, Dict

SCHEMA_VERSION_KEY = "tomeOfSecrets_schemaVersion"
CHARACTER_SHEET_KEY = "characterSheet"
MONTHLY_COMPLETED_BOOKS_KEY = "monthlyCompletedBooks"

LEARNED_ABILITIES = "learnedAbilities"
EQUIPPED_ITEMS = "equippedItems"
INVENTORY_ITEMS = "inventoryItems"
ACTIVE_ASSIGNMENTS = "activeAssignments"
COMPLETED_QUESTS = "completedQuests"
DISCARDED_QUESTS = "discardedQuests"
ATMOSPHERIC_BUFFS = "atmosphericBuffs"
ACTIVE_CURSES = "activeCurses"
COMPLETED_CURSES = "completedCurses"
TEMPORARY_BUFFS = "temporaryBuffs"
BUFF_MONTH_COUNTER = "buffMonthCounter"
SELECTED_GENRES = "selectedGenres"
GENRE_DICE_SELECTION = "genreDiceSelection"
SHELF_BOOK_COLORS = "shelfBookColors"
DUSTY_BLUEPRINTS = "dustyBlueprints"
COMPLETED_RESTORATION_PROJECTS = "completedRestorationProjects"
COMPLETED_WINGS = "completedWings"
PASSIVE_ITEM_SLOTS = "passiveItemSlots"
PASSIVE_FAMILIAR_SLOTS = "passiveFamiliarSlots"
CLAIMED_ROOM_REWARDS = "claimedRoomRewards"
DUNGEON_COMPLETION_DRAWS_REDEEMED = "dungeonCompletionDrawsRedeemed"
BOOKS = "books"
EXTERNAL_CURRICULUM = "exchangeProgram"

QUEST_LIST_KEYS = (ACTIVE_ASSIGNMENTS, COMPLETED_QUESTS, DISCARDED_QUESTS)
PASSIVE_SLOT_KEYS = (PASSIVE_ITEM_SLOTS, PASSIVE_FAMILIAR_SLOTS)
COUNTER_KEYS = (BUFF_MONTH_COUNTER, DUSTY_BLUEPRINTS, DUNGEON_COMPLETION_DRAWS_REDEEMED)

DICE_TYPES = ("d4", "d6", "d8", "d10", "d12", "d20")
DEFAULT_DICE = "d6"

EMPTY_STATE: Dict[str, Any] = {
    LEARNED_ABILITIES: [],
    EQUIPPED_ITEMS: [],
    INVENTORY_ITEMS: [],
    ACTIVE_ASSIGNMENTS: [],
    COMPLETED_QUESTS: [],
    DISCARDED_QUESTS: [],
    ATMOSPHERIC_BUFFS: {},
    ACTIVE_CURSES: [],
    COMPLETED_CURSES: [],
    TEMPORARY_BUFFS: [],
    BUFF_MONTH_COUNTER: 0,
    SELECTED_GENRES: [],
    GENRE_DICE_SELECTION: DEFAULT_DICE,
    SHELF_BOOK_COLORS: [],
    DUSTY_BLUEPRINTS: 0,
    COMPLETED_RESTORATION_PROJECTS: [],
    COMPLETED_WINGS: [],
    PASSIVE_ITEM_SLOTS: [],
    PASSIVE_FAMILIAR_SLOTS: [],
    CLAIMED_ROOM_REWARDS: [],
    DUNGEON_COMPLETION_DRAWS_REDEEMED: 0,
    BOOKS: {},
    EXTERNAL_CURRICULUM: {"curriculums": {}},
}

STATE_KEYS = tuple(EMPTY_STATE.keys())


def empty_state() -> Dict[str, Any]:
    """A fresh, independent copy of the empty canonical document."""
    return copy.deepcopy(EMPTY_STATE)
