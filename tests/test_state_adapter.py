"""
Tests for tomekeeper/tools/state_adapter.py — the single mutation path.

Uses the shipped content tables (conftest `content`) for item categories and
buff/curse definitions, and MagicMock handlers for change events.
"""

from unittest.mock import MagicMock

from tomekeeper.tools import storage_keys as keys
from tomekeeper.tools.events import EventBus, StateEvent
from tomekeeper.tools.state_adapter import StateAdapter
from tomekeeper.tools.storage_keys import empty_state

COMPASS = "Librarian's Compass"
AMULET = "Amulet of Duality"
KEY = "Key of the Archive"
DRAGON = "Pocket Dragon"


def locations_of(adapter, name):
    """Every place an item name currently sits."""
    found = []
    found += ["inventory" for i in adapter.to_document()[keys.INVENTORY_ITEMS] if i["name"] == name]
    found += ["equipped" for i in adapter.to_document()[keys.EQUIPPED_ITEMS] if i["name"] == name]
    for slot_key in keys.PASSIVE_SLOT_KEYS:
        found += [s["slotId"] for s in adapter.to_document()[slot_key] if s["itemName"] == name]
    return found


class TestEvents:

    def test_subscribe_and_dispose(self, adapter, handler):
        dispose = adapter.on(StateEvent.SELECTED_GENRES_CHANGED, handler)
        adapter.set_selected_genres(["Fantasy"])
        handler.assert_called_once_with(["Fantasy"])

        dispose()
        adapter.set_selected_genres(["Horror"])
        assert handler.call_count == 1

    def test_off(self, adapter, handler):
        adapter.on(StateEvent.GENRE_DICE_CHANGED, handler)
        adapter.off(StateEvent.GENRE_DICE_CHANGED, handler)
        adapter.set_genre_dice_selection("d20")
        handler.assert_not_called()

    def test_failing_handler_does_not_abort_mutation(self, adapter, handler):
        broken = MagicMock(side_effect=RuntimeError("render failed"))
        adapter.on(StateEvent.SELECTED_GENRES_CHANGED, broken)
        adapter.on(StateEvent.SELECTED_GENRES_CHANGED, handler)
        adapter.set_selected_genres(["Fantasy"])
        assert adapter.get_selected_genres() == ["Fantasy"]
        handler.assert_called_once()

    def test_payload_is_a_copy(self, adapter):
        received = []
        adapter.on(StateEvent.SELECTED_GENRES_CHANGED, received.append)
        adapter.set_selected_genres(["Fantasy"])
        received[0].append("Tampered")
        assert adapter.get_selected_genres() == ["Fantasy"]

    def test_event_bus_listener_count(self, handler):
        bus = EventBus()
        bus.on(StateEvent.BOOKS_CHANGED, handler)
        bus.on(StateEvent.BOOKS_CHANGED, handler)
        assert bus.listener_count(StateEvent.BOOKS_CHANGED) == 1

    def test_every_event_maps_to_a_state_key(self):
        assert {e.storage_key for e in StateEvent} == set(keys.STATE_KEYS)


class TestGenres:

    def test_sanitized_and_deduplicated(self, adapter):
        assert adapter.set_selected_genres([" Fantasy ", "Fantasy", "", 3, "Horror"]) == ["Fantasy", "Horror"]

    def test_no_event_when_unchanged(self, adapter, handler):
        adapter.set_selected_genres(["Fantasy"])
        adapter.on(StateEvent.SELECTED_GENRES_CHANGED, handler)
        adapter.set_selected_genres(["Fantasy"])
        handler.assert_not_called()

    def test_clear(self, adapter):
        adapter.set_selected_genres(["Fantasy"])
        assert adapter.clear_selected_genres() == []

    def test_dice_selection(self, adapter):
        assert adapter.set_genre_dice_selection("d20") == "d20"
        assert adapter.set_genre_dice_selection("d7") is None
        assert adapter.get_genre_dice_selection() == "d20"


class TestQuestCreation:

    def test_single_quest_gets_identity(self, adapter, make_quest):
        quest = adapter.add_active_quests(make_quest())
        assert quest["id"]
        assert quest["dateAdded"]
        assert quest["status"] == "active"
        assert adapter.get_active_quests() == [quest]

    def test_batch_emits_once(self, adapter, handler, make_quest):
        adapter.on(StateEvent.ACTIVE_QUESTS_CHANGED, handler)
        added = adapter.add_active_quests([make_quest(), make_quest(prompt="Another")])
        assert len(added) == 2
        handler.assert_called_once()

    def test_duplicate_id_rejected(self, adapter, make_quest):
        assert adapter.add_active_quests(make_quest(id="q1")) is not None
        assert adapter.add_completed_quests(make_quest(id="q1")) is None
        assert adapter.get_completed_quests() == []

    def test_completed_list_stamps_completion(self, adapter, make_quest):
        quest = adapter.add_completed_quests(make_quest())
        assert quest["status"] == "completed"
        assert quest["dateCompleted"]

    def test_invalid_input(self, adapter):
        assert adapter.add_active_quests("quest") is None
        assert adapter.add_active_quests(["quest", 3]) == []

    def test_dangling_book_link_cleared(self, adapter, make_quest):
        quest = adapter.add_active_quests(make_quest(bookId="no-such-book"))
        assert quest["bookId"] is None

    def test_reads_are_copies(self, adapter, make_quest):
        adapter.add_active_quests(make_quest())
        adapter.get_active_quests()[0]["notes"] = "changed"
        assert adapter.get_active_quests()[0]["notes"] == ""


class TestQuestUpdates:

    def test_update_merges(self, adapter, make_quest):
        quest = adapter.add_active_quests(make_quest())
        updated = adapter.update_quest(keys.ACTIVE_ASSIGNMENTS, 0, {"notes": "Loved it", "id": "hijack", "status": "completed"})
        assert updated["notes"] == "Loved it"
        assert updated["id"] == quest["id"]
        assert updated["status"] == "active"

    def test_update_bad_index(self, adapter):
        assert adapter.update_quest(keys.ACTIVE_ASSIGNMENTS, 0, {"notes": "x"}) is None
        assert adapter.update_quest("nonsense", 0, {"notes": "x"}) is None

    def test_update_unknown_book_rejected(self, adapter, make_quest):
        quest = adapter.add_active_quests(make_quest())
        assert adapter.update_quest_by_id(quest["id"], {"bookId": "missing"}) is None
        assert adapter.get_quest(quest["id"])["bookId"] is None

    def test_move_keeps_identity(self, adapter, handler, make_quest):
        quest = adapter.add_active_quests(make_quest())
        adapter.on(StateEvent.ACTIVE_QUESTS_CHANGED, handler)
        adapter.on(StateEvent.COMPLETED_QUESTS_CHANGED, handler)

        moved = adapter.move_quest(keys.ACTIVE_ASSIGNMENTS, 0, keys.COMPLETED_QUESTS)
        assert moved["id"] == quest["id"]
        assert moved["status"] == "completed"
        assert moved["dateCompleted"]
        assert adapter.get_active_quests() == []
        assert handler.call_count == 2

    def test_move_with_transform(self, adapter, make_quest):
        adapter.add_active_quests(make_quest())

        def finalize(q):
            q["rewards"] = {"xp": 99}
            return q

        moved = adapter.move_quest(keys.ACTIVE_ASSIGNMENTS, 0, keys.COMPLETED_QUESTS, finalize)
        assert moved["rewards"]["xp"] == 99

    def test_complete_quest(self, adapter, make_quest):
        quest = adapter.add_active_quests(make_quest())
        completed = adapter.complete_quest(quest["id"], {"xp": 15, "inkDrops": 10, "items": [COMPASS]})
        assert completed["rewards"]["items"] == [COMPASS]
        assert adapter.complete_quest(quest["id"]) is None

    def test_discard_only_from_active(self, adapter, make_quest):
        quest = adapter.add_completed_quests(make_quest())
        assert adapter.discard_quest(quest["id"]) is None
        active = adapter.add_active_quests(make_quest())
        assert adapter.discard_quest(active["id"])["status"] == "discarded"

    def test_quest_in_exactly_one_list(self, adapter, make_quest):
        quest = adapter.add_active_quests(make_quest())
        adapter.complete_quest(quest["id"])
        adapter.move_quest(keys.COMPLETED_QUESTS, 0, keys.DISCARDED_QUESTS)
        lists = [k for k in keys.QUEST_LIST_KEYS if any(q["id"] == quest["id"] for q in adapter.to_document()[k])]
        assert lists == [keys.DISCARDED_QUESTS]

    def test_remove_and_delete(self, adapter, make_quest):
        first = adapter.add_active_quests(make_quest())
        adapter.add_active_quests(make_quest(prompt="second"))
        assert adapter.remove_quest(keys.ACTIVE_ASSIGNMENTS, 1) is True
        assert adapter.remove_quest(keys.ACTIVE_ASSIGNMENTS, 5) is False
        assert adapter.delete_quest(first["id"]) is True
        assert adapter.delete_quest(first["id"]) is False
        assert adapter.get_active_quests() == []


class TestItems:

    def test_add_hydrates(self, adapter):
        item = adapter.add_inventory_item(COMPASS)
        assert item["type"] == "Wearable"
        assert "Ink Drops" in item["bonus"]
        assert adapter.to_document()[keys.INVENTORY_ITEMS][0]["type"] == "Wearable"

    def test_case_insensitive_hydration(self, adapter):
        adapter.add_inventory_item({"name": "pocket dragon"})
        item = adapter.get_inventory_items()[0]
        assert item["name"] == "pocket dragon"
        assert item["type"] == "Familiar"

    def test_unknown_item_kept_as_stored(self, adapter):
        item = adapter.add_inventory_item({"name": "Homebrew Trinket", "type": "Wearable", "bonus": "+1"})
        assert item == {"name": "Homebrew Trinket", "type": "Wearable", "img": "", "bonus": "+1"}

    def test_already_owned_rejected(self, adapter):
        adapter.add_inventory_item(COMPASS)
        adapter.equip_item(COMPASS)
        assert adapter.add_inventory_item(COMPASS) is None
        assert locations_of(adapter, COMPASS) == ["equipped"]

    def test_equip_full_category_fails(self, adapter):
        """Capacity 1 for Wearable: equipping a second one fails and nothing moves."""
        adapter.set_slot_limits({"Wearable": 1})
        adapter.add_inventory_item(COMPASS)
        adapter.add_inventory_item(AMULET)
        assert adapter.equip_item(AMULET) is True

        assert adapter.move_inventory_item_to_equipped(0) is False
        assert [i["name"] for i in adapter.get_equipped_items()] == [AMULET]
        assert [i["name"] for i in adapter.get_inventory_items()] == [COMPASS]

    def test_other_category_unaffected_by_limit(self, adapter):
        adapter.set_slot_limits({"Wearable": 0})
        adapter.add_inventory_item(KEY)
        assert adapter.equip_item(KEY) is True

    def test_invalid_slot_limits_ignored(self, adapter):
        assert adapter.set_slot_limits({"Wearable": 2, "Hat": 1, "Familiar": "two"}) == {"Wearable": 2}

    def test_unequip(self, adapter, handler):
        adapter.add_inventory_item(COMPASS)
        adapter.equip_item(COMPASS)
        adapter.on(StateEvent.INVENTORY_CHANGED, handler)
        adapter.on(StateEvent.EQUIPPED_CHANGED, handler)
        assert adapter.unequip_item(COMPASS) is True
        assert locations_of(adapter, COMPASS) == ["inventory"]
        assert handler.call_count == 2

    def test_remove_by_index(self, adapter):
        adapter.add_inventory_item(COMPASS)
        assert adapter.remove_inventory_item(3) is False
        assert adapter.remove_inventory_item(0) is True
        assert adapter.remove_equipped_item(0) is False
        assert adapter.get_owned_item_names() == set()


class TestPassiveSlots:

    def test_equipped_item_moves_into_slot(self, adapter):
        """An equipped item assigned to a passive slot is no longer equipped."""
        adapter.add_inventory_item(COMPASS)
        adapter.equip_item(COMPASS)
        adapter.add_passive_item_slot("item-slot-reading-nook", "reading-nook")

        assert adapter.set_passive_slot_item("item-slot-reading-nook", COMPASS) is True
        assert locations_of(adapter, COMPASS) == ["item-slot-reading-nook"]
        assert adapter.get_equipped_items() == []
        assert adapter.get_inventory_items() == []

    def test_displaced_item_returns_to_inventory(self, adapter):
        adapter.add_inventory_item(COMPASS)
        adapter.add_inventory_item(KEY)
        adapter.add_passive_item_slot("s1")
        adapter.set_passive_slot_item("s1", COMPASS)
        adapter.set_passive_slot_item("s1", KEY)
        assert locations_of(adapter, COMPASS) == ["inventory"]
        assert locations_of(adapter, KEY) == ["s1"]
        assert adapter.get_inventory_items()[0]["type"] == "Wearable"

    def test_move_between_slots(self, adapter):
        adapter.add_inventory_item(COMPASS)
        adapter.add_passive_item_slot("s1")
        adapter.add_passive_item_slot("s2")
        adapter.set_passive_slot_item("s1", COMPASS)
        adapter.set_passive_slot_item("s2", COMPASS)
        assert locations_of(adapter, COMPASS) == ["s2"]

    def test_category_must_match_slot(self, adapter):
        adapter.add_inventory_item(COMPASS)
        adapter.add_inventory_item(DRAGON)
        adapter.add_passive_item_slot("item")
        adapter.add_passive_familiar_slot("familiar")
        assert adapter.set_passive_slot_item("item", DRAGON) is False
        assert adapter.set_passive_familiar_slot_item("familiar", COMPASS) is False
        assert adapter.set_passive_familiar_slot_item("familiar", DRAGON) is True
        assert adapter.set_passive_familiar_slot_item("item", DRAGON) is False

    def test_unowned_item_rejected(self, adapter):
        adapter.add_passive_item_slot("s1")
        assert adapter.set_passive_slot_item("s1", COMPASS) is False

    def test_clear_slot(self, adapter):
        adapter.add_inventory_item(COMPASS)
        adapter.add_passive_item_slot("s1")
        adapter.set_passive_slot_item("s1", COMPASS)
        assert adapter.set_passive_slot_item("s1", None) is True
        assert locations_of(adapter, COMPASS) == ["inventory"]

    def test_slot_ids_unique_across_collections(self, adapter):
        assert adapter.add_passive_item_slot("shared") is not None
        assert adapter.add_passive_familiar_slot("shared") is None
        assert adapter.add_passive_item_slot("  ") is None

    def test_remove_slot_returns_item(self, adapter):
        adapter.add_inventory_item(DRAGON)
        adapter.add_passive_familiar_slot("f1", "familiar-perch")
        adapter.set_passive_familiar_slot_item("f1", DRAGON)
        assert adapter.remove_passive_slot("f1") is True
        assert adapter.get_passive_familiar_slots() == []
        assert locations_of(adapter, DRAGON) == ["inventory"]
        assert adapter.remove_passive_slot("f1") is False

    def test_exclusive_placement_after_shuffle(self, adapter):
        adapter.add_inventory_item(COMPASS)
        adapter.add_inventory_item(KEY)
        adapter.add_passive_item_slot("s1")
        adapter.equip_item(COMPASS)
        adapter.set_passive_slot_item("s1", COMPASS)
        adapter.equip_item(KEY)
        adapter.set_passive_slot_item("s1", KEY)
        adapter.equip_item(COMPASS)
        for name in (COMPASS, KEY):
            assert len(locations_of(adapter, name)) == 1


class TestCurrency:

    def test_spend_more_than_balance(self, adapter):
        adapter.add_dusty_blueprints(20)
        assert adapter.spend_currency(keys.DUSTY_BLUEPRINTS, 30) is False
        assert adapter.get_dusty_blueprints() == 20

    def test_spend_at_or_below_balance(self, adapter):
        adapter.add_dusty_blueprints(20)
        assert adapter.spend_dusty_blueprints(5) is True
        assert adapter.spend_dusty_blueprints(15) is True
        assert adapter.get_dusty_blueprints() == 0

    def test_failed_spend_emits_nothing(self, adapter, handler):
        adapter.on(StateEvent.DUSTY_BLUEPRINTS_CHANGED, handler)
        adapter.spend_dusty_blueprints(1)
        handler.assert_not_called()

    def test_invalid_amounts(self, adapter):
        assert adapter.add_currency(keys.DUSTY_BLUEPRINTS, -5) is None
        assert adapter.add_currency(keys.DUSTY_BLUEPRINTS, float("nan")) is None
        assert adapter.add_currency("inkDrops", 5) is None
        assert adapter.add_currency(keys.BUFF_MONTH_COUNTER, 1.5) is None
        assert adapter.spend_currency(keys.DUSTY_BLUEPRINTS, -1) is False
        assert adapter.get_currency("inkDrops") is None

    def test_counters(self, adapter):
        assert adapter.increment_buff_month_counter() == 1
        assert adapter.increment_buff_month_counter() == 2
        assert adapter.redeem_dungeon_completion_draw() == 1
        assert adapter.get_currency(keys.DUNGEON_COMPLETION_DRAWS_REDEEMED) == 1


class TestRestoration:

    def test_projects(self, adapter):
        assert adapter.complete_restoration_project("reading-nook") is True
        assert adapter.complete_restoration_project("reading-nook") is False
        assert adapter.is_restoration_project_completed("reading-nook") is True
        assert adapter.get_completed_restoration_projects() == ["reading-nook"]

    def test_wings_and_rooms(self, adapter):
        assert adapter.complete_wing("1") is True
        assert adapter.is_wing_completed(1) is True
        assert adapter.claim_room_reward(5) is True
        assert adapter.claim_room_reward("5") is False
        assert adapter.get_claimed_room_rewards() == ["5"]
        assert adapter.get_completed_wings() == ["1"]


class TestCursesAndBuffs:

    def test_curse_requirement_from_content(self, adapter):
        curse = adapter.add_active_curse("The Unread Tome")
        assert curse["requirement"].startswith("Read a book that has been on your shelf")
        assert adapter.add_active_curse({"requirement": "no name"}) is None

    def test_curse_lifecycle(self, adapter):
        adapter.add_active_curse({"name": "The Lost Lore", "book": "Dune"})
        assert adapter.update_active_curse(0, {"book": "Emma"})["book"] == "Emma"
        moved = adapter.move_curse_to_completed(0)
        assert moved["name"] == "The Lost Lore"
        assert adapter.get_active_curses() == []
        assert len(adapter.get_completed_curses()) == 1
        assert adapter.remove_completed_curse(0) is True
        assert adapter.remove_active_curse(0) is False

    def test_buff_months_from_duration(self, adapter):
        assert adapter.add_temporary_buff("Gilded Painting")["monthsRemaining"] == 2
        assert adapter.add_temporary_buff("Long Read Focus")["monthsRemaining"] == 0
        custom = adapter.add_temporary_buff({"name": "Custom", "duration": "until-end-month"})
        assert custom["monthsRemaining"] == 1
        assert custom["description"] == ""

    def test_buff_update_and_remove(self, adapter):
        adapter.add_temporary_buff("Gilded Painting")
        updated = adapter.update_temporary_buff(0, {"monthsRemaining": 1, "status": "used"})
        assert updated["monthsRemaining"] == 1
        assert updated["status"] == "used"
        assert adapter.update_temporary_buff(4, {}) is None
        assert adapter.remove_temporary_buff(0) is True

    def test_atmospheric_buffs(self, adapter):
        assert adapter.set_atmospheric_buff_days_used("The Candlight Study", 3) == {"daysUsed": 3, "isActive": False}
        assert adapter.set_atmospheric_buff_active("The Candlight Study", True)["isActive"] is True
        assert adapter.set_atmospheric_buff_days_used("The Candlight Study", -1) is None
        assert adapter.get_atmospheric_buffs() == {"The Candlight Study": {"daysUsed": 3, "isActive": True}}


class TestAbilities:

    def test_add_remove(self, adapter):
        assert adapter.add_learned_ability("Speed Reader") is True
        assert adapter.add_learned_ability("Speed Reader") is False
        assert adapter.get_learned_abilities() == ["Speed Reader"]
        assert adapter.remove_learned_ability("Speed Reader") is True
        assert adapter.remove_learned_ability("Speed Reader") is False


class TestWholeDocument:

    def test_missing_keys_filled_on_construction(self, content):
        adapter = StateAdapter({keys.SELECTED_GENRES: ["Fantasy"]}, content)
        assert set(adapter.to_document()) >= set(keys.STATE_KEYS)

    def test_to_document_is_a_copy(self, adapter):
        doc = adapter.to_document()
        doc[keys.SELECTED_GENRES].append("x")
        assert adapter.get_selected_genres() == []

    def test_load_document_emits_changed_keys_only(self, adapter, handler):
        adapter.on(StateEvent.SELECTED_GENRES_CHANGED, handler)
        adapter.on(StateEvent.DUSTY_BLUEPRINTS_CHANGED, handler)
        doc = empty_state()
        doc[keys.SELECTED_GENRES] = ["Horror"]
        changed = adapter.load_document(doc)
        assert changed == [keys.SELECTED_GENRES]
        handler.assert_called_once_with(["Horror"])

    def test_construction_reconciles_quests(self, content):
        adapter = StateAdapter({
            keys.ACTIVE_ASSIGNMENTS: [{"id": "q1", "type": "first"}, {"type": "no id"}],
            keys.DISCARDED_QUESTS: [{"id": "q1", "type": "copy"}],
        }, content)
        assert adapter.get_discarded_quests() == []
        for quest in adapter.get_active_quests():
            assert adapter.get_quest(quest["id"])["type"] == quest["type"]

    def test_construction_places_each_item_once(self, content):
        adapter = StateAdapter({
            keys.INVENTORY_ITEMS: [{"name": KEY}],
            keys.EQUIPPED_ITEMS: [{"name": KEY}],
        }, content)
        assert locations_of(adapter, KEY) == ["equipped"]

    def test_get_field(self, adapter):
        adapter.set_selected_genres(["Fantasy"])
        genres = adapter.get_field(keys.SELECTED_GENRES)
        genres.append("Horror")
        assert adapter.get_selected_genres() == ["Fantasy"]
        assert adapter.get_field("notAKey") is None
        assert not hasattr(adapter, "state")
