"""
Book schema — the reading-tracking record quests and curriculum prompts link to.
"""

from typing import List, Optional

from pydantic import Field, field_validator, model_validator

from tomekeeper.models.base import (
    CanonicalModel,
    as_choice,
    as_optional_non_negative_int,
    as_optional_str,
    as_str,
    as_unique_str_list,
    require_text,
)

BOOK_STATUSES = {"reading", "completed", "want-to-read", "dnf"}


class BookLinks(CanonicalModel):
    """Back-references from a book to the records that point at it."""

    quest_ids: List[str] = Field(default_factory=list)
    curriculum_prompt_ids: List[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def fold_legacy_quest_link(cls, data):
        if not isinstance(data, dict):
            return {}
        legacy = data.get("tomeQuestId")
        if isinstance(legacy, str) and legacy.strip():
            data = dict(data)
            quest_ids = as_unique_str_list(data.get("questIds"))
            if legacy.strip() not in quest_ids:
                quest_ids.append(legacy.strip())
            data["questIds"] = quest_ids
        return data

    @field_validator("quest_ids", "curriculum_prompt_ids", mode="before")
    @classmethod
    def id_list(cls, v):
        return as_unique_str_list(v)


class BookModel(CanonicalModel):
    id: str
    title: str = ""
    author: str = ""
    cover: Optional[str] = None
    page_count: Optional[int] = None
    status: str = "reading"
    date_added: Optional[str] = None
    date_completed: Optional[str] = None
    links: BookLinks = Field(default_factory=BookLinks)

    @model_validator(mode="before")
    @classmethod
    def accept_legacy_fields(cls, data):
        """Older saves used the quest-side field names for cover and page count."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if not isinstance(data.get("cover"), str) and isinstance(data.get("coverUrl"), str):
            data["cover"] = data["coverUrl"]
        if data.get("pageCount") is None and data.get("pageCountRaw") is not None:
            data["pageCount"] = data["pageCountRaw"]
        return data

    @field_validator("id", mode="before")
    @classmethod
    def validate_id(cls, v):
        return require_text(v, "id")

    @field_validator("title", "author", mode="before")
    @classmethod
    def text_field(cls, v):
        return as_str(v).strip()

    @field_validator("cover", "date_added", "date_completed", mode="before")
    @classmethod
    def optional_text(cls, v):
        return as_optional_str(v)

    @field_validator("page_count", mode="before")
    @classmethod
    def validate_page_count(cls, v):
        return as_optional_non_negative_int(v)

    @field_validator("status", mode="before")
    @classmethod
    def validate_status(cls, v):
        return as_choice(v, BOOK_STATUSES, "reading")

    @field_validator("links", mode="before")
    @classmethod
    def links_object(cls, v):
        return v if isinstance(v, dict) else {}
