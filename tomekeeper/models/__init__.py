"""
Pydantic models for every persisted record in a tomekeeper save.
"""

from tomekeeper.models.base import CanonicalModel
from tomekeeper.models.books import BOOK_STATUSES, BookLinks, BookModel
from tomekeeper.models.curriculum import CategoryModel, CurriculumModel, PromptModel
from tomekeeper.models.document import ExportEnvelope
from tomekeeper.models.effects import (
    BUFF_DURATIONS,
    BUFF_STATUSES,
    AtmosphericBuffModel,
    CurseModel,
    TemporaryBuffModel,
)
from tomekeeper.models.items import ITEM_TYPES, ItemModel, PassiveSlotModel
from tomekeeper.models.quests import QUEST_STATUSES, QuestModel, Rewards

__all__ = [
    "CanonicalModel",
    "BOOK_STATUSES", "BookLinks", "BookModel",
    "CategoryModel", "CurriculumModel", "PromptModel",
    "ExportEnvelope",
    "BUFF_DURATIONS", "BUFF_STATUSES",
    "AtmosphericBuffModel", "CurseModel", "TemporaryBuffModel",
    "ITEM_TYPES", "ItemModel", "PassiveSlotModel",
    "QUEST_STATUSES", "QuestModel", "Rewards",
]
