"""
Export envelope — the file a user downloads and later imports.
"""

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tomekeeper.models.base import as_non_negative_int, as_str


class ExportEnvelope(BaseModel):
    """`{version, exportDate, formData, characterState}`.

    formData and characterState are required; their contents are validated
    later by the document validator, not here. A missing version means the
    export predates versioning.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    version: int = 0
    export_date: str = Field(default="", alias="exportDate")
    form_data: Dict[str, Any] = Field(alias="formData")
    character_state: Dict[str, Any] = Field(alias="characterState")

    @field_validator("version", mode="before")
    @classmethod
    def validate_version(cls, v):
        return as_non_negative_int(v)

    @field_validator("export_date", mode="before")
    @classmethod
    def validate_export_date(cls, v):
        return as_str(v)
