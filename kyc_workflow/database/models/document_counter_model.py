from beanie import Document
from pydantic import Field
from typing import Optional

DOCUMENT_NUMBER_COUNTER = "documentNumber"


class DocumentCounter(Document):
    """Single row holding today's sequence for document numbers."""

    id: str = Field(default=DOCUMENT_NUMBER_COUNTER)
    sequence_value: int = 0
    last_reset_date: Optional[str] = Field(None, description="DD-MM-YYYY of the day the sequence belongs to")

    class Settings:
        name = "document_counters"
