"""
Curses, temporary buffs and atmospheric buffs.
"""

from pydantic import field_validator

from tomekeeper.models.base import (
    CanonicalModel,
    as_bool,
    as_choice,
    as_non_negative_int,
    as_str,
    require_text,
)

BUFF_DURATIONS = {"one-time", "until-end-month", "two-months"}
BUFF_STATUSES = {"active", "used"}


class CurseModel(CanonicalModel):
    name: str
    requirement: str = ""
    book: str = ""

    @field_validator("name", mode="before")
    @classmethod
    def validate_name(cls, v):
        return require_text(v, "name")

    @field_validator("requirement", "book", mode="before")
    @classmethod
    def text_field(cls, v):
        return as_str(v)


class TemporaryBuffModel(CanonicalModel):
    """A buff that lasts for a fixed number of months or a single use."""

    name: str
    description: str = ""
    duration: str = "two-months"
    months_remaining: int = 0
    status: str = "active"

    @field_validator("name", mode="before")
    @classmethod
    def validate_name(cls, v):
        return require_text(v, "name")

    @field_validator("description", mode="before")
    @classmethod
    def text_field(cls, v):
        return as_str(v)

    @field_validator("duration", mode="before")
    @classmethod
    def validate_duration(cls, v):
        return as_choice(v, BUFF_DURATIONS, "two-months")

    @field_validator("months_remaining", mode="before")
    @classmethod
    def validate_months(cls, v):
        return as_non_negative_int(v)

    @field_validator("status", mode="before")
    @classmethod
    def validate_status(cls, v):
        return as_choice(v, BUFF_STATUSES, "active")


class AtmosphericBuffModel(CanonicalModel):
    days_used: int = 0
    is_active: bool = False

    @field_validator("days_used", mode="before")
    @classmethod
    def validate_days(cls, v):
        return as_non_negative_int(v)

    @field_validator("is_active", mode="before")
    @classmethod
    def active_flag(cls, v):
        return as_bool(v)
