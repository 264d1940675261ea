"""
Tests for books and the external curriculum tree on the StateAdapter.

Focus is link symmetry: quest.bookId <-> book.links.questIds and
prompt.bookId <-> book.links.curriculumPromptIds, including cascades.
"""

from tomekeeper.tools import storage_keys as keys
from tomekeeper.tools.events import StateEvent
from tomekeeper.tools.validator import validate_document


def prompt_ids(adapter, book_id):
    return adapter.get_book(book_id)["links"]["curriculumPromptIds"]


def quest_ids(adapter, book_id):
    return adapter.get_book(book_id)["links"]["questIds"]


class TestBooks:

    def test_add_book(self, adapter):
        book = adapter.add_book({"title": " Dune ", "author": "Frank Herbert", "pageCount": 412})
        assert book["id"]
        assert book["title"] == "Dune"
        assert book["status"] == "reading"
        assert book["dateAdded"]
        assert book["dateCompleted"] is None
        assert book["links"] == {"questIds": [], "curriculumPromptIds": []}

    def test_duplicate_and_invalid(self, adapter):
        assert adapter.add_book({"id": "b1", "title": "Dune"}) is not None
        assert adapter.add_book({"id": "b1", "title": "Other"}) is None
        assert adapter.add_book("Dune") is None
        assert len(adapter.get_books()) == 1

    def test_completed_on_creation(self, adapter):
        book = adapter.add_book({"title": "Emma", "status": "completed"})
        assert book["dateCompleted"]

    def test_status_filter(self, adapter):
        adapter.add_book({"title": "A"})
        adapter.add_book({"title": "B", "status": "want-to-read"})
        assert [b["title"] for b in adapter.get_books_by_status("want-to-read")] == ["B"]

    def test_completion_stamps_and_reopen_clears(self, adapter):
        book = adapter.add_book({"title": "Dune"})
        completed = adapter.update_book(book["id"], {"status": "completed"})
        assert completed["dateCompleted"]
        reopened = adapter.update_book(book["id"], {"status": "reading"})
        assert reopened["dateCompleted"] is None

    def test_update_cannot_rewrite_links(self, adapter, make_quest):
        book = adapter.add_book({"title": "Dune"})
        quest = adapter.add_active_quests(make_quest(bookId=book["id"]))
        updated = adapter.update_book(book["id"], {"title": "Dune Messiah", "links": {"questIds": []}})
        assert updated["title"] == "Dune Messiah"
        assert updated["links"]["questIds"] == [quest["id"]]

    def test_add_book_ignores_caller_links(self, adapter):
        book = adapter.add_book({"title": "Dune", "links": {"questIds": ["q1"], "curriculumPromptIds": ["p1"]}})
        assert book["links"] == {"questIds": [], "curriculumPromptIds": []}

    def test_mark_complete(self, adapter):
        book = adapter.add_book({"title": "Dune"})
        assert adapter.mark_book_complete(book["id"])["status"] == "completed"
        assert adapter.mark_book_complete("missing") is None

    def test_get_book_is_a_copy(self, adapter):
        book = adapter.add_book({"title": "Dune"})
        adapter.get_book(book["id"])["title"] = "Changed"
        assert adapter.get_book(book["id"])["title"] == "Dune"


class TestQuestBookLinks:

    def test_new_quest_backlinks_book(self, adapter, handler, make_quest):
        book = adapter.add_book({"title": "Dune"})
        adapter.on(StateEvent.BOOKS_CHANGED, handler)
        quest = adapter.add_active_quests(make_quest(bookId=book["id"]))
        assert quest["bookId"] == book["id"]
        assert quest_ids(adapter, book["id"]) == [quest["id"]]
        handler.assert_called_once()

    def test_relink_moves_backlink(self, adapter, make_quest):
        first = adapter.add_book({"title": "Dune"})
        second = adapter.add_book({"title": "Emma"})
        quest = adapter.add_active_quests(make_quest(bookId=first["id"]))

        adapter.link_book_to_quest(quest["id"], second["id"])
        assert quest_ids(adapter, first["id"]) == []
        assert quest_ids(adapter, second["id"]) == [quest["id"]]

        adapter.link_book_to_quest(quest["id"], None)
        assert quest_ids(adapter, second["id"]) == []
        assert adapter.get_quest(quest["id"])["bookId"] is None

    def test_link_to_unknown_book(self, adapter, make_quest):
        quest = adapter.add_active_quests(make_quest())
        assert adapter.link_book_to_quest(quest["id"], "missing") is None
        assert adapter.link_book_to_quest("missing", None) is None

    def test_link_survives_completion(self, adapter, make_quest):
        book = adapter.add_book({"title": "Dune"})
        quest = adapter.add_active_quests(make_quest(bookId=book["id"]))
        adapter.complete_quest(quest["id"])
        assert quest_ids(adapter, book["id"]) == [quest["id"]]

    def test_deleting_quest_unlinks(self, adapter, make_quest):
        book = adapter.add_book({"title": "Dune"})
        quest = adapter.add_active_quests(make_quest(bookId=book["id"]))
        adapter.delete_quest(quest["id"])
        assert quest_ids(adapter, book["id"]) == []

    def test_deleting_book_clears_quests(self, adapter, make_quest):
        book = adapter.add_book({"title": "Dune"})
        quest = adapter.add_completed_quests(make_quest(bookId=book["id"]))
        assert adapter.delete_book(book["id"]) is True
        assert adapter.get_quest(quest["id"])["bookId"] is None
        assert adapter.delete_book(book["id"]) is False


class TestCurriculum:

    def _tree(self, adapter):
        curriculum = adapter.add_curriculum("Book Club")
        category = adapter.add_category(curriculum["id"], "Fall")
        prompts = adapter.add_prompts(curriculum["id"], category["id"], ["Read a classic", "Read poetry"])
        return curriculum, category, prompts

    def test_build_tree(self, adapter):
        curriculum, category, prompts = self._tree(adapter)
        assert curriculum["categories"] == {}
        assert category["prompts"] == {}
        tree = adapter.get_external_curriculum()
        stored = tree["curriculums"][curriculum["id"]]["categories"][category["id"]]["prompts"]
        assert [p["text"] for p in stored.values()] == ["Read a classic", "Read poetry"]

    def test_invalid_names(self, adapter):
        assert adapter.add_curriculum("  ") is None
        assert adapter.add_category("missing", "Fall") is None
        curriculum = adapter.add_curriculum("Book Club")
        assert adapter.add_category(curriculum["id"], "") is None

    def test_add_prompts_skips_blanks(self, adapter, handler):
        curriculum = adapter.add_curriculum("Book Club")
        category = adapter.add_category(curriculum["id"], "Fall")
        adapter.on(StateEvent.EXTERNAL_CURRICULUM_CHANGED, handler)
        added = adapter.add_prompts(curriculum["id"], category["id"], ["One", "", "  ", 3, "Two"])
        assert [p["text"] for p in added] == ["One", "Two"]
        handler.assert_called_once()
        assert adapter.add_prompts("missing", category["id"], ["x"]) == []
        assert adapter.add_prompts(curriculum["id"], category["id"], "not a list") == []

    def test_renames(self, adapter):
        curriculum, category, prompts = self._tree(adapter)
        assert adapter.update_curriculum(curriculum["id"], {"name": "Club"})["name"] == "Club"
        assert adapter.update_category(curriculum["id"], category["id"], {"name": "Winter"})["name"] == "Winter"
        assert adapter.update_prompt(prompts[0]["id"], {"text": "Read a Victorian classic"})["text"] == (
            "Read a Victorian classic"
        )
        assert adapter.update_curriculum("missing", {"name": "x"}) is None

    def test_prompt_link_symmetry(self, adapter):
        _, _, prompts = self._tree(adapter)
        first = adapter.add_book({"title": "Dune"})
        second = adapter.add_book({"title": "Emma"})
        prompt_id = prompts[0]["id"]

        linked = adapter.link_book_to_prompt(prompt_id, first["id"])
        assert linked["bookId"] == first["id"]
        assert prompt_ids(adapter, first["id"]) == [prompt_id]

        adapter.link_book_to_prompt(prompt_id, second["id"])
        assert prompt_ids(adapter, first["id"]) == []
        assert prompt_ids(adapter, second["id"]) == [prompt_id]

        adapter.link_book_to_prompt(prompt_id, None)
        assert prompt_ids(adapter, second["id"]) == []

    def test_link_unknown(self, adapter):
        _, _, prompts = self._tree(adapter)
        assert adapter.link_book_to_prompt(prompts[0]["id"], "missing") is None
        assert adapter.link_book_to_prompt("missing", None) is None

    def test_mark_prompt_complete(self, adapter):
        _, _, prompts = self._tree(adapter)
        done = adapter.mark_prompt_complete(prompts[0]["id"])
        assert done["completedAt"]
        assert adapter.mark_prompt_complete("missing") is None

    def test_delete_prompt_unlinks_book(self, adapter):
        _, _, prompts = self._tree(adapter)
        book = adapter.add_book({"title": "Dune"})
        adapter.link_book_to_prompt(prompts[0]["id"], book["id"])
        assert adapter.delete_prompt(prompts[0]["id"]) is True
        assert prompt_ids(adapter, book["id"]) == []
        assert adapter.delete_prompt(prompts[0]["id"]) is False

    def test_delete_category_cascades(self, adapter):
        curriculum, category, prompts = self._tree(adapter)
        book = adapter.add_book({"title": "Dune"})
        adapter.link_book_to_prompt(prompts[1]["id"], book["id"])
        assert adapter.delete_category(curriculum["id"], category["id"]) is True
        assert adapter.get_external_curriculum()["curriculums"][curriculum["id"]]["categories"] == {}
        assert prompt_ids(adapter, book["id"]) == []

    def test_delete_curriculum_cascades(self, adapter, handler):
        curriculum, _, prompts = self._tree(adapter)
        book = adapter.add_book({"title": "Dune"})
        adapter.link_book_to_prompt(prompts[0]["id"], book["id"])
        adapter.on(StateEvent.BOOKS_CHANGED, handler)
        assert adapter.delete_curriculum(curriculum["id"]) is True
        assert adapter.get_external_curriculum() == {"curriculums": {}}
        assert prompt_ids(adapter, book["id"]) == []
        handler.assert_called_once()
        assert adapter.delete_curriculum(curriculum["id"]) is False

    def test_deleting_book_clears_prompt_links(self, adapter):
        _, _, prompts = self._tree(adapter)
        book = adapter.add_book({"title": "Dune"})
        adapter.link_book_to_prompt(prompts[0]["id"], book["id"])
        adapter.delete_book(book["id"])
        tree = adapter.get_external_curriculum()
        all_prompts = [
            p
            for c in tree["curriculums"].values()
            for k in c["categories"].values()
            for p in k["prompts"].values()
        ]
        assert all(p["bookId"] is None for p in all_prompts)

    def test_curriculum_survives_document_round_trip(self, adapter):
        self._tree(adapter)
        assert validate_document(adapter.to_document())[keys.EXTERNAL_CURRICULUM] == adapter.get_external_curriculum()
