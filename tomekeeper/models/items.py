"""
Item and passive-slot schemas.

Stored items are lightweight: the name is the identity, everything else is
merged back in from the content registry at read time.
"""

from typing import Optional

from pydantic import field_validator

from tomekeeper.models.base import CanonicalModel, as_optional_str, as_str, require_text

ITEM_TYPES = {"Wearable", "Non-Wearable", "Familiar"}


class ItemModel(CanonicalModel):
    """An owned item in inventory or in the equipped list."""

    name: str
    type: str = ""
    img: str = ""
    bonus: str = ""

    @field_validator("name", mode="before")
    @classmethod
    def validate_name(cls, v):
        return require_text(v, "name")

    @field_validator("type", mode="before")
    @classmethod
    def validate_type(cls, v):
        v = as_str(v).strip()
        return v if v in ITEM_TYPES else ""

    @field_validator("img", "bonus", mode="before")
    @classmethod
    def text_field(cls, v):
        return as_str(v)


class PassiveSlotModel(CanonicalModel):
    """A display (item) or adoption (familiar) slot."""

    slot_id: str
    item_name: Optional[str] = None
    unlocked_from: Optional[str] = None

    @field_validator("slot_id", mode="before")
    @classmethod
    def validate_slot_id(cls, v):
        return require_text(v, "slotId")

    @field_validator("item_name", "unlocked_from", mode="before")
    @classmethod
    def optional_text(cls, v):
        v = as_optional_str(v)
        return v.strip() if v else None
