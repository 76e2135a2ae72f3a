"""
Derived state of a user's DocumentRecord.

Everything here is a pure function of the three document lists and the
linked verification ids. ``recompute_derived`` is called after every
mutation of a record and its output replaces the stored derived fields,
so calling it twice in a row gives the same result.
"""
from typing import Iterable, List, Sequence

from pydantic import BaseModel, Field

from kyc_workflow.schemas.enums import DocumentOverallStatus, EntryStatus
from kyc_workflow.workflow.rounding import percentage, round_half_up

COMPLETION_STEP_COUNT = 4


class DocumentCompletionSteps(BaseModel):
    personal_documents: bool = False
    financial_documents: bool = False
    address_documents: bool = False
    verifications: bool = False

    def completed(self) -> int:
        return sum(
            1 for flag in (
                self.personal_documents,
                self.financial_documents,
                self.address_documents,
                self.verifications,
            ) if flag
        )


class CategoryProgress(BaseModel):
    verified: int = 0
    total: int = 0
    percentage: int = 0


class VerificationProgress(BaseModel):
    personal_documents: CategoryProgress = Field(default_factory=CategoryProgress)
    financial_documents: CategoryProgress = Field(default_factory=CategoryProgress)
    address_documents: CategoryProgress = Field(default_factory=CategoryProgress)
    overall_percentage: int = 0


class DerivedDocumentState(BaseModel):
    completion_steps: DocumentCompletionSteps
    completion_percentage: int
    verification_progress: VerificationProgress
    overall_status: DocumentOverallStatus
    total_documents: int
    verified_documents: int
    rejected_documents: int


def category_progress(entries: Sequence) -> CategoryProgress:
    total = len(entries)
    verified = sum(1 for entry in entries if entry.verified)
    return CategoryProgress(verified=verified, total=total, percentage=percentage(verified, total))


def weighted_overall_percentage(categories: Iterable[CategoryProgress]) -> int:
    """Document-count weighted average of the category percentages."""
    categories = list(categories)
    total = sum(c.total for c in categories)
    if total == 0:
        return 0
    weighted_sum = sum(c.percentage * c.total for c in categories)
    return round_half_up(weighted_sum / total)


def derive_overall_status(completion_percentage: int, verification_percentage: int) -> DocumentOverallStatus:
    if completion_percentage == 100 and verification_percentage == 100:
        return DocumentOverallStatus.VERIFIED
    if completion_percentage == 100 and verification_percentage > 0:
        return DocumentOverallStatus.UNDER_REVIEW
    if completion_percentage == 100:
        return DocumentOverallStatus.PENDING
    return DocumentOverallStatus.INCOMPLETE


def recompute_derived(
    personal: Sequence,
    financial: Sequence,
    address: Sequence,
    verifications: List[str],
) -> DerivedDocumentState:
    steps = DocumentCompletionSteps(
        personal_documents=len(personal) > 0,
        financial_documents=len(financial) > 0,
        address_documents=len(address) > 0,
        verifications=len(verifications) > 0,
    )
    completion = percentage(steps.completed(), COMPLETION_STEP_COUNT)

    progress = VerificationProgress(
        personal_documents=category_progress(personal),
        financial_documents=category_progress(financial),
        address_documents=category_progress(address),
    )
    progress.overall_percentage = weighted_overall_percentage([
        progress.personal_documents,
        progress.financial_documents,
        progress.address_documents,
    ])

    all_entries = [*personal, *financial, *address]
    return DerivedDocumentState(
        completion_steps=steps,
        completion_percentage=completion,
        verification_progress=progress,
        overall_status=derive_overall_status(completion, progress.overall_percentage),
        total_documents=len(all_entries),
        verified_documents=sum(1 for e in all_entries if e.verified),
        rejected_documents=sum(1 for e in all_entries if e.status == EntryStatus.REJECTED),
    )
