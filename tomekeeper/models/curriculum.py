"""
External curriculum tree: curriculum -> category -> prompt.

The nested maps are validated entry by entry in tools/validator.py so that a
single bad prompt does not take its whole category down with it. These models
only describe one node each; children are carried as raw dicts.
"""

from typing import Any, Dict, Optional

from pydantic import Field, field_validator

from tomekeeper.models.base import CanonicalModel, as_optional_str, as_str, require_text


class PromptModel(CanonicalModel):
    id: str
    text: str = ""
    book_id: Optional[str] = None
    completed_at: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def validate_id(cls, v):
        return require_text(v, "id")

    @field_validator("text", mode="before")
    @classmethod
    def text_field(cls, v):
        return as_str(v)

    @field_validator("book_id", "completed_at", mode="before")
    @classmethod
    def optional_text(cls, v):
        return as_optional_str(v)


class CategoryModel(CanonicalModel):
    id: str
    name: str = ""
    prompts: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", mode="before")
    @classmethod
    def validate_id(cls, v):
        return require_text(v, "id")

    @field_validator("name", mode="before")
    @classmethod
    def text_field(cls, v):
        return as_str(v)

    @field_validator("prompts", mode="before")
    @classmethod
    def prompt_map(cls, v):
        return v if isinstance(v, dict) else {}


class CurriculumModel(CanonicalModel):
    id: str
    name: str = ""
    categories: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", mode="before")
    @classmethod
    def validate_id(cls, v):
        return require_text(v, "id")

    @field_validator("name", mode="before")
    @classmethod
    def text_field(cls, v):
        return as_str(v)

    @field_validator("categories", mode="before")
    @classmethod
    def category_map(cls, v):
        return v if isinstance(v, dict) else {}
