from datetime import timedelta

import pytest

from kyc_workflow.core import settings
from kyc_workflow.core.errors import ValidationError
from kyc_workflow.database.models import DocumentCounter
from kyc_workflow.services.sequence_service import sequence_service, validate_document_number


async def test_allocate_counts_up_within_a_day(db, clock):
    numbers = [await sequence_service.allocate() for _ in range(3)]
    assert numbers == ["001/15-10-2025", "002/15-10-2025", "003/15-10-2025"]


async def test_allocate_resets_on_a_new_day(db, clock):
    await sequence_service.allocate()
    await sequence_service.allocate()

    clock.moment = clock.moment + timedelta(days=1)
    assert await sequence_service.allocate() == "001/16-10-2025"

    counter = await DocumentCounter.get("documentNumber")
    assert counter.sequence_value == 1
    assert counter.last_reset_date == "16-10-2025"


async def test_peek_does_not_consume(db, clock):
    assert await sequence_service.peek() == "001/15-10-2025"
    await sequence_service.allocate()
    assert await sequence_service.peek() == "002/15-10-2025"
    assert await sequence_service.peek() == "002/15-10-2025"
    assert await sequence_service.allocate() == "002/15-10-2025"


async def test_peek_after_day_change_starts_over(db, clock):
    await sequence_service.allocate()
    clock.moment = clock.moment + timedelta(days=1)
    assert await sequence_service.peek() == "001/16-10-2025"


def test_now_is_in_document_timezone():
    sequence_service.use_clock(None)
    assert str(sequence_service.now().tzinfo) == settings.DOCUMENT_TIMEZONE


@pytest.mark.parametrize("value", ["1/15-10-2025", "001-15-10-2025", "001/2025-10-15", ""])
def test_validate_document_number_rejects_bad_shapes(value):
    with pytest.raises(ValidationError):
        validate_document_number(value)


def test_validate_document_number_accepts_canonical_form():
    assert validate_document_number("007/15-10-2025") == "007/15-10-2025"
