from types import SimpleNamespace

import pytest

from kyc_workflow.schemas.enums import DocumentOverallStatus, EntryStatus
from kyc_workflow.workflow.document_progress import (
    CategoryProgress,
    category_progress,
    derive_overall_status,
    recompute_derived,
    weighted_overall_percentage,
)
from kyc_workflow.workflow.rounding import percentage, round_half_up


def entry(verified=False, status=EntryStatus.PENDING):
    return SimpleNamespace(verified=verified, status=status)


def test_round_half_up_does_not_round_to_even():
    assert round_half_up(2.5) == 3
    assert round_half_up(0.5) == 1
    assert round_half_up(33.33) == 33
    assert percentage(1, 3) == 33
    assert percentage(2, 3) == 67
    assert percentage(0, 0) == 0


def test_mixed_upload_scenario_is_incomplete_with_weighted_progress():
    personal = [entry(verified=True, status=EntryStatus.APPROVED), entry()]
    financial = [entry()]

    derived = recompute_derived(personal, financial, [], [])

    assert derived.verification_progress.personal_documents.percentage == 50
    assert derived.verification_progress.financial_documents.percentage == 0
    assert derived.verification_progress.address_documents.total == 0
    assert derived.verification_progress.overall_percentage == 33
    assert derived.completion_steps.address_documents is False
    assert derived.completion_percentage == 50
    assert derived.overall_status == DocumentOverallStatus.INCOMPLETE
    assert derived.total_documents == 3
    assert derived.verified_documents == 1


def test_overall_percentage_is_weighted_by_document_count():
    categories = [
        CategoryProgress(verified=1, total=4, percentage=25),
        CategoryProgress(verified=1, total=1, percentage=100),
        CategoryProgress(),
    ]
    # 25*4 + 100*1 over 5 documents, not the plain mean of 25 and 100
    assert weighted_overall_percentage(categories) == 40
    assert weighted_overall_percentage([CategoryProgress(), CategoryProgress()]) == 0


def test_category_progress_counts_verified_entries():
    progress = category_progress([entry(True), entry(True), entry()])
    assert (progress.verified, progress.total, progress.percentage) == (2, 3, 67)


@pytest.mark.parametrize("completion,verification,expected", [
    (100, 100, DocumentOverallStatus.VERIFIED),
    (100, 40, DocumentOverallStatus.UNDER_REVIEW),
    (100, 0, DocumentOverallStatus.PENDING),
    (75, 100, DocumentOverallStatus.INCOMPLETE),
    (0, 0, DocumentOverallStatus.INCOMPLETE),
])
def test_derive_overall_status(completion, verification, expected):
    assert derive_overall_status(completion, verification) == expected


def test_complete_record_with_all_verified_documents_is_verified():
    derived = recompute_derived([entry(True)], [entry(True)], [entry(True)], ["v1"])
    assert derived.completion_percentage == 100
    assert derived.verification_progress.overall_percentage == 100
    assert derived.overall_status == DocumentOverallStatus.VERIFIED


def test_rejected_entries_are_counted_but_do_not_block_progress_math():
    derived = recompute_derived([entry(status=EntryStatus.REJECTED)], [entry(True)], [entry()], ["v1"])
    assert derived.rejected_documents == 1
    assert derived.verification_progress.overall_percentage == 33
    assert derived.overall_status == DocumentOverallStatus.UNDER_REVIEW


def test_recompute_is_idempotent():
    personal, financial, address = [entry(True)], [entry()], [entry(True), entry()]
    first = recompute_derived(personal, financial, address, ["v1"])
    second = recompute_derived(personal, financial, address, ["v1"])
    assert first == second
