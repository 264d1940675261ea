"""
Typed change channels for the state adapter.

One channel per entity class. Handlers receive a fresh copy of the changed
collection after the mutation has been fully applied.
"""

import copy
import logging
from enum import Enum
from typing import Any, Callable, Dict, List

logger = logging.getLogger("StateEvents")

Handler = Callable[[Any], None]


class StateEvent(Enum):
    """Change channels, each tied to the storage key it persists to."""
    SELECTED_GENRES_CHANGED = "selectedGenres"
    GENRE_DICE_CHANGED = "genreDiceSelection"
    ACTIVE_QUESTS_CHANGED = "activeAssignments"
    COMPLETED_QUESTS_CHANGED = "completedQuests"
    DISCARDED_QUESTS_CHANGED = "discardedQuests"
    INVENTORY_CHANGED = "inventoryItems"
    EQUIPPED_CHANGED = "equippedItems"
    PASSIVE_ITEM_SLOTS_CHANGED = "passiveItemSlots"
    PASSIVE_FAMILIAR_SLOTS_CHANGED = "passiveFamiliarSlots"
    DUSTY_BLUEPRINTS_CHANGED = "dustyBlueprints"
    BUFF_MONTH_COUNTER_CHANGED = "buffMonthCounter"
    DUNGEON_DRAWS_CHANGED = "dungeonCompletionDrawsRedeemed"
    RESTORATION_PROJECTS_CHANGED = "completedRestorationProjects"
    WINGS_CHANGED = "completedWings"
    CLAIMED_ROOM_REWARDS_CHANGED = "claimedRoomRewards"
    ACTIVE_CURSES_CHANGED = "activeCurses"
    COMPLETED_CURSES_CHANGED = "completedCurses"
    TEMPORARY_BUFFS_CHANGED = "temporaryBuffs"
    ATMOSPHERIC_BUFFS_CHANGED = "atmosphericBuffs"
    LEARNED_ABILITIES_CHANGED = "learnedAbilities"
    SHELF_BOOK_COLORS_CHANGED = "shelfBookColors"
    BOOKS_CHANGED = "books"
    EXTERNAL_CURRICULUM_CHANGED = "exchangeProgram"

    @property
    def storage_key(self) -> str:
        return self.value

    @classmethod
    def for_key(cls, key: str) -> "StateEvent":
        return cls(key)


class EventBus:
    """Subscribe/unsubscribe/emit over StateEvent channels."""

    def __init__(self):
        self._listeners: Dict[StateEvent, List[Handler]] = {}

    def on(self, event: StateEvent, handler: Handler) -> Callable[[], None]:
        """Subscribe. Returns a disposer that unsubscribes the handler."""
        handlers = self._listeners.setdefault(event, [])
        if handler not in handlers:
            handlers.append(handler)
        return lambda: self.off(event, handler)

    def off(self, event: StateEvent, handler: Handler) -> None:
        handlers = self._listeners.get(event)
        if not handlers or handler not in handlers:
            return
        handlers.remove(handler)
        if not handlers:
            del self._listeners[event]

    def listener_count(self, event: StateEvent) -> int:
        return len(self._listeners.get(event, []))

    def emit(self, event: StateEvent, payload: Any) -> None:
        # Copy: a handler may dispose itself while we iterate.
        for handler in list(self._listeners.get(event, [])):
            try:
                handler(copy.deepcopy(payload))
            except Exception:
                logger.exception(f"Listener for {event.name} raised")
