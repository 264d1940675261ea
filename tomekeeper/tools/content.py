"""
ContentRegistry — read-only reference tables shipped with the package.

Items, dungeon rooms, restoration projects, reward defaults and buff/curse
definitions live in data/content.yaml. The engine consults them for item
hydration, legacy reward synthesis and post-load repair, but never writes to
them. The expansion manifest in the same file drives feature gating.
"""

import os
import re
import logging
from typing import Any, Dict, Iterable, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger("ContentRegistry")

DEFAULT_CONTENT_PATH = os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "data", "content.yaml"
)

REWARD_AMOUNT_KEYS = ("xp", "inkDrops", "paperScraps")

_LEADING_SYMBOLS = re.compile(r"^[^\w]+")


# ---------------------------------------------------------------------------
# Content schema
# ---------------------------------------------------------------------------

class ItemDefinition(BaseModel):
    type: str = ""
    img: str = ""
    bonus: str = ""


class Encounter(BaseModel):
    name: str
    type: str


class DungeonRoom(BaseModel):
    name: str
    encounters: List[Encounter] = Field(default_factory=list)


class ProjectReward(BaseModel):
    type: str
    suggested_items: List[str] = Field(default_factory=list)
    description: str = ""


class RestorationProject(BaseModel):
    name: str
    wing_id: str = ""
    cost: int = 0
    reward: Optional[ProjectReward] = None


class Expansion(BaseModel):
    name: str = ""
    version: str = ""
    enabled: bool = True
    requires: List[str] = Field(default_factory=list)


class BuffDefinition(BaseModel):
    name: str
    description: str = ""
    duration: str = "two-months"


class CurseDefinition(BaseModel):
    name: str
    requirement: str = ""


class ContentData(BaseModel):
    expansions: Dict[str, Expansion] = Field(default_factory=dict)
    quest_rewards: Dict[str, Dict[str, int]] = Field(default_factory=dict)
    items: Dict[str, ItemDefinition] = Field(default_factory=dict)
    dungeon_rooms: Dict[str, DungeonRoom] = Field(default_factory=dict)
    restoration_projects: Dict[str, RestorationProject] = Field(default_factory=dict)
    temporary_buffs: List[BuffDefinition] = Field(default_factory=list)
    curses: List[CurseDefinition] = Field(default_factory=list)


def quest_type_name(raw: Any) -> str:
    """'♥ Organize the Stacks' -> 'Organize the Stacks'."""
    if not isinstance(raw, str):
        return ""
    return _LEADING_SYMBOLS.sub("", raw).strip()


def _room_sort_key(room_number: str):
    return (0, int(room_number)) if room_number.isdigit() else (1, room_number)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class ContentRegistry:
    """Lookup API over ContentData."""

    def __init__(self, data: Optional[ContentData] = None, disabled_expansions: Iterable[str] = ()):
        self.data = data or ContentData()
        self.disabled_expansions = {e.lower() for e in disabled_expansions}
        self._item_names = {name.lower(): name for name in self.data.items}

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def get_item(self, name: Any) -> Optional[Dict[str, Any]]:
        """Canonical fields for an item, matched exactly then case-insensitively."""
        if not isinstance(name, str):
            return None
        definition = self.data.items.get(name)
        if definition is None:
            canonical_name = self._item_names.get(name.strip().lower())
            if canonical_name is None:
                return None
            definition = self.data.items[canonical_name]
        return definition.model_dump()

    def item_type(self, name: Any) -> str:
        definition = self.get_item(name)
        return definition["type"] if definition else ""

    def hydrate_item(self, item: Dict[str, Any]) -> Dict[str, Any]:
        """Merge canonical content over a stored item, keeping the stored name."""
        if not isinstance(item, dict) or not item.get("name"):
            return item
        canonical = self.get_item(item["name"])
        if canonical is None:
            return dict(item)
        return {**item, **canonical, "name": item["name"]}

    # ------------------------------------------------------------------
    # Rewards
    # ------------------------------------------------------------------

    def quest_reward_defaults(self, quest: Dict[str, Any]) -> Dict[str, Any]:
        """Default reward payload for a quest that predates stored rewards."""
        quest_type = quest_type_name(quest.get("type"))
        is_encounter = quest.get("isEncounter") in (True, "true")

        if quest_type == "Organize the Stacks":
            entry = self.data.quest_rewards.get("organize_the_stacks")
        elif quest_type == "Extra Credit":
            entry = self.data.quest_rewards.get("extra_credit")
        elif quest_type == "Dungeon Crawl" and is_encounter:
            entry = self.data.quest_rewards.get("encounter_monster")
        else:
            entry = self.data.quest_rewards.get("default_completion")

        rewards = {"xp": 0, "inkDrops": 0, "paperScraps": 0, "items": [], "modifiedBy": []}
        for key in REWARD_AMOUNT_KEYS:
            if entry and key in entry:
                rewards[key] = entry[key]
        return rewards

    # ------------------------------------------------------------------
    # Dungeon rooms and restoration
    # ------------------------------------------------------------------

    def familiar_encounters(self) -> List[str]:
        """Familiar encounter names that are also items, in room order."""
        names = []
        for room_number in sorted(self.data.dungeon_rooms, key=_room_sort_key):
            for encounter in self.data.dungeon_rooms[room_number].encounters:
                if encounter.type != "Familiar" or encounter.name not in self.data.items:
                    continue
                if encounter.name not in names:
                    names.append(encounter.name)
        return names

    def restoration_project(self, project_id: str) -> Optional[RestorationProject]:
        return self.data.restoration_projects.get(project_id)

    # ------------------------------------------------------------------
    # Buffs and curses
    # ------------------------------------------------------------------

    def temporary_buff(self, name: str) -> Optional[BuffDefinition]:
        for definition in self.data.temporary_buffs:
            if definition.name == name:
                return definition
        return None

    def curse(self, name: str) -> Optional[CurseDefinition]:
        for definition in self.data.curses:
            if definition.name == name:
                return definition
        return None

    # ------------------------------------------------------------------
    # Expansions
    # ------------------------------------------------------------------

    def is_expansion_enabled(self, expansion_id: str, _visiting: Optional[set] = None) -> bool:
        """Core is always on. Anything else must exist, not be disabled, and
        have every expansion it requires enabled."""
        if expansion_id == "core":
            return True
        if expansion_id.lower() in self.disabled_expansions:
            return False
        expansion = self.data.expansions.get(expansion_id)
        if expansion is None or not expansion.enabled:
            return False

        visiting = _visiting or set()
        if expansion_id in visiting:
            logger.warning(f"Expansion requirement cycle at '{expansion_id}'")
            return False
        path = visiting | {expansion_id}
        return all(self.is_expansion_enabled(req, path) for req in expansion.requires)


def load_content(path: Optional[str] = None, disabled_expansions: Iterable[str] = ()) -> ContentRegistry:
    """Load reference content from YAML.

    An unreadable or malformed file yields an empty registry (no hydration, no
    repairs) rather than stopping the application from loading its save.
    """
    path = path or DEFAULT_CONTENT_PATH
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        data = ContentData.model_validate(raw)
    except FileNotFoundError:
        logger.error(f"Content file not found: {path}")
        return ContentRegistry(disabled_expansions=disabled_expansions)
    except yaml.YAMLError as e:
        logger.error(f"Content YAML parse error in {path}: {e}")
        return ContentRegistry(disabled_expansions=disabled_expansions)
    except ValidationError as e:
        logger.error(f"Content validation failed for {path}: {e}")
        return ContentRegistry(disabled_expansions=disabled_expansions)

    logger.debug(
        f"Loaded content: {len(data.items)} items, {len(data.dungeon_rooms)} rooms, "
        f"{len(data.restoration_projects)} restoration projects"
    )
    return ContentRegistry(data, disabled_expansions=disabled_expansions)
