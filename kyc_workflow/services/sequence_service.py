"""
Daily document numbers.

Numbers look like ``007/15-10-2025``: a three digit sequence that starts
again at 001 every day, followed by the day it was issued. The counter is
a single MongoDB document updated with atomic operators only, so several
API instances can allocate at the same time without handing out the same
number twice.
"""
import logging
import re
from datetime import datetime
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from kyc_workflow.core import settings
from kyc_workflow.core.errors import SequenceUnavailableError, ValidationError
from kyc_workflow.database.models.document_counter_model import DOCUMENT_NUMBER_COUNTER, DocumentCounter

logger = logging.getLogger(__name__)

DOCUMENT_NUMBER_PATTERN = re.compile(r"^\d{3}/\d{2}-\d{2}-\d{4}$")
MAX_ALLOCATION_ATTEMPTS = 3


def format_document_date(moment: datetime) -> str:
    return moment.strftime("%d-%m-%Y")


def format_document_number(sequence: int, day: str) -> str:
    return f"{sequence:03d}/{day}"


def validate_document_number(document_number: str) -> str:
    if not document_number or not DOCUMENT_NUMBER_PATTERN.match(document_number):
        raise ValidationError.for_field(
            "document_number", "Document number must look like NNN/DD-MM-YYYY"
        )
    return document_number


class SequenceService:
    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock

    def now(self) -> datetime:
        if self._clock is not None:
            return self._clock()
        return datetime.now(ZoneInfo(settings.DOCUMENT_TIMEZONE))

    def use_clock(self, clock: Optional[Callable[[], datetime]]) -> None:
        self._clock = clock

    def today(self) -> str:
        return format_document_date(self.now())

    async def _increment_today(self, collection, today: str) -> Optional[dict]:
        return await collection.find_one_and_update(
            {"_id": DOCUMENT_NUMBER_COUNTER, "last_reset_date": today},
            {"$inc": {"sequence_value": 1}},
            return_document=ReturnDocument.AFTER,
        )

    async def _start_day(self, collection, today: str) -> Optional[dict]:
        # matches a stale day or no row at all; the insert path creates the row
        return await collection.find_one_and_update(
            {"_id": DOCUMENT_NUMBER_COUNTER, "last_reset_date": {"$ne": today}},
            {"$set": {"sequence_value": 1, "last_reset_date": today}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )

    async def allocate(self) -> str:
        """Issue the next number for today."""
        today = self.today()
        collection = DocumentCounter.get_motor_collection()
        try:
            for attempt in range(1, MAX_ALLOCATION_ATTEMPTS + 1):
                counter = await self._increment_today(collection, today)
                if counter is None:
                    try:
                        counter = await self._start_day(collection, today)
                    except DuplicateKeyError:
                        # another caller started the day first
                        logger.debug("Counter rollover raced on attempt %d; retrying", attempt)
                        continue
                if counter is not None:
                    number = format_document_number(counter["sequence_value"], today)
                    logger.info("Allocated document number %s", number)
                    return number
        except PyMongoError as e:
            logger.error("Document number allocation failed: %s", e)
            raise SequenceUnavailableError("Could not allocate a document number, please retry") from e

        logger.error("Document number allocation gave up after %d attempts", MAX_ALLOCATION_ATTEMPTS)
        raise SequenceUnavailableError("Could not allocate a document number, please retry")

    async def peek(self) -> str:
        """The number ``allocate`` would return next, without consuming it."""
        today = self.today()
        try:
            counter = await DocumentCounter.get_motor_collection().find_one({"_id": DOCUMENT_NUMBER_COUNTER})
        except PyMongoError as e:
            logger.error("Document counter read failed: %s", e)
            raise SequenceUnavailableError("Could not read the document counter") from e
        if counter is None or counter.get("last_reset_date") != today:
            return format_document_number(1, today)
        return format_document_number(counter["sequence_value"] + 1, today)


sequence_service = SequenceService()
