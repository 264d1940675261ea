"""
Quest schema — one unit of assigned reading work and its rewards.
"""

from typing import List, Optional

from pydantic import ConfigDict, Field, field_validator

from tomekeeper.models.base import (
    CanonicalModel,
    Number,
    as_bool,
    as_choice,
    as_non_negative,
    as_optional_bool,
    as_optional_non_negative,
    as_optional_str,
    as_str,
    as_str_list,
)

QUEST_STATUSES = {"active", "completed", "discarded"}


class Rewards(CanonicalModel):
    """Currency amounts and granted item names for a quest."""

    xp: Number = 0
    ink_drops: Number = 0
    paper_scraps: Number = 0
    items: List[str] = Field(default_factory=list)
    modified_by: List[str] = Field(default_factory=list)

    @field_validator("xp", "ink_drops", "paper_scraps", mode="before")
    @classmethod
    def clamp_amount(cls, v):
        return as_non_negative(v)

    @field_validator("items", "modified_by", mode="before")
    @classmethod
    def string_list(cls, v):
        return as_str_list(v)


class QuestModel(CanonicalModel):
    """Schema for a quest in any of the three quest lists.

    Unknown fields are kept so that data written by newer versions survives a
    round trip through an older one.
    """

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    type: str = ""
    prompt: str = ""
    book: str = ""
    book_author: str = ""
    book_id: Optional[str] = None
    month: str = ""
    year: str = ""
    status: str = "active"
    notes: str = ""
    buffs: List[str] = Field(default_factory=list)
    rewards: Rewards = Field(default_factory=Rewards)
    is_encounter: bool = False
    is_befriend: Optional[bool] = None
    room_number: Optional[str] = None
    encounter_name: Optional[str] = None
    date_added: Optional[str] = None
    date_completed: Optional[str] = None
    cover_url: Optional[str] = None
    page_count_raw: Optional[Number] = None
    page_count_effective: Optional[Number] = None
    restoration_project_id: Optional[str] = None

    @field_validator("type", "prompt", "book", "book_author", "notes", mode="before")
    @classmethod
    def text_field(cls, v):
        return as_str(v)

    @field_validator("month", "year", mode="before")
    @classmethod
    def period_field(cls, v):
        # Legacy saves stored numeric months/years.
        return as_optional_str(v) or ""

    @field_validator(
        "id", "book_id", "room_number", "encounter_name", "date_added",
        "date_completed", "cover_url", "restoration_project_id",
        mode="before",
    )
    @classmethod
    def optional_text(cls, v):
        return as_optional_str(v)

    @field_validator("status", mode="before")
    @classmethod
    def validate_status(cls, v):
        return as_choice(v, QUEST_STATUSES, "active")

    @field_validator("buffs", mode="before")
    @classmethod
    def buff_names(cls, v):
        return as_str_list(v)

    @field_validator("rewards", mode="before")
    @classmethod
    def rewards_object(cls, v):
        return v if isinstance(v, dict) else {}

    @field_validator("is_encounter", mode="before")
    @classmethod
    def encounter_flag(cls, v):
        # Older saves wrote the flag as the string 'true'.
        if v == "true":
            return True
        return as_bool(v)

    @field_validator("is_befriend", mode="before")
    @classmethod
    def befriend_flag(cls, v):
        return as_optional_bool(v)

    @field_validator("page_count_raw", "page_count_effective", mode="before")
    @classmethod
    def page_count(cls, v):
        return as_optional_non_negative(v)
