"""
Post-load repair: history-derived fixes that a per-record migration cannot make.

Each repair reads completed history, applies any missing mutation through the
StateAdapter exactly once, and reports what it did. All repairs are
idempotent and deterministic, and a repair for an optional feature is skipped
when that feature's expansion is disabled.
"""

import logging
from dataclasses import dataclass, field
from typing import List

from tomekeeper.tools.content import ContentRegistry, quest_type_name
from tomekeeper.tools.state_adapter import StateAdapter

logger = logging.getLogger("Repair")

SLOT_REWARD_TYPES = {
    "passiveItemSlot": "item-slot-{}",
    "passiveFamiliarSlot": "familiar-slot-{}",
}


@dataclass
class RepairResult:
    changed: bool = False
    notes: List[str] = field(default_factory=list)

    def merge(self, other: "RepairResult") -> "RepairResult":
        self.changed = self.changed or other.changed
        self.notes.extend(other.notes)
        return self


def repair_completed_restoration_projects(adapter: StateAdapter, content: ContentRegistry) -> RepairResult:
    """Create the passive slot for any completed project that never got one."""
    if not content.is_expansion_enabled("library-restoration"):
        return RepairResult()

    slots = adapter.get_passive_item_slots() + adapter.get_passive_familiar_slots()
    projects_with_slots = {slot["unlockedFrom"] for slot in slots if slot.get("unlockedFrom")}

    fixed = 0
    for project_id in adapter.get_completed_restoration_projects():
        if project_id in projects_with_slots:
            continue
        project = content.restoration_project(project_id)
        if project is None or project.reward is None:
            continue
        pattern = SLOT_REWARD_TYPES.get(project.reward.type)
        if pattern is None:
            continue

        slot_id = pattern.format(project_id)
        if project.reward.type == "passiveItemSlot":
            created = adapter.add_passive_item_slot(slot_id, project_id)
        else:
            created = adapter.add_passive_familiar_slot(slot_id, project_id)
        if created is not None:
            fixed += 1
            logger.info(f"Created missing passive slot {slot_id} for project {project_id}")

    if not fixed:
        return RepairResult()
    return RepairResult(
        changed=True,
        notes=[f"Fixed {fixed} completed restoration project(s) by creating missing passive slots."],
    )


def _matches_encounter(quest, encounter_name: str) -> bool:
    """Structured match on encounterName, else substring match on the prompt.

    The prompt match is a heuristic for quests saved before encounterName
    existed. It can match a prompt that merely mentions the familiar.
    """
    if quest_type_name(quest.get("type")) != "Dungeon Crawl":
        return False
    is_encounter = quest.get("isEncounter") in (True, "true")
    if is_encounter and quest.get("encounterName") == encounter_name:
        return True
    prompt = quest.get("prompt")
    return isinstance(prompt, str) and encounter_name in prompt


def repair_completed_familiar_encounters(adapter: StateAdapter, content: ContentRegistry) -> RepairResult:
    """Heuristic: grant familiars befriended in completed encounters but never awarded."""
    if not content.is_expansion_enabled("dungeons"):
        return RepairResult()

    owned = adapter.get_owned_item_names()
    completed = adapter.get_completed_quests()

    fixed = 0
    for encounter_name in content.familiar_encounters():
        if encounter_name in owned:
            continue
        for quest in completed:
            if not _matches_encounter(quest, encounter_name):
                continue
            if quest.get("isBefriend") is False:
                continue
            if adapter.add_inventory_item(encounter_name) is not None:
                owned.add(encounter_name)
                fixed += 1
                logger.info(f"Added missing familiar '{encounter_name}' from completed quest {quest.get('id')}")
            break

    if not fixed:
        return RepairResult()
    return RepairResult(
        changed=True,
        notes=[f"Fixed {fixed} completed familiar encounter(s) by adding missing familiars to inventory."],
    )


REPAIRS = [
    repair_completed_restoration_projects,
    repair_completed_familiar_encounters,
]


def run_all_repairs(adapter: StateAdapter, content: ContentRegistry) -> RepairResult:
    result = RepairResult()
    for repair in REPAIRS:
        result.merge(repair(adapter, content))
    if result.changed:
        logger.info(f"Post-load repair applied {len(result.notes)} fix group(s)")
    return result
