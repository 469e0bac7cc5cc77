"""
Submission & Settlement Processor.

Validates a reviewer's completed review and settles it:
1. assignment -> approved with review fields
2. item assigned -> reviewed
3. +1 earned credit for the reviewer (slot released)
4. reviewer/owner relationship, an upsert so duplicates are no-ops
Steps 1-4 are one store transaction, all or nothing.
5. batch completion once every member is approved (best-effort)
Then the owner and reviewer are notified, also best-effort.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .config import config
from .errors import NotFoundError, ReviewExchangeError, ValidationError
from .logging import get_logger
from .models import AssignmentStatus, TransactionType
from .notifications import notify_item_reviewed, notify_review_completed

logger = get_logger('settlement')

CREDITS_PER_REVIEW = 1
MIN_RATING = 1
MAX_RATING = 5


@dataclass
class SettlementReceipt:
    """What a successful submission produced."""
    assignment_id: str
    item_id: str
    reviewer_id: str
    transaction_id: str
    credits_earned: int = CREDITS_PER_REVIEW
    batch_completed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'message': 'Review submitted and approved successfully',
            'assignmentId': self.assignment_id,
            'creditsEarned': self.credits_earned,
            'batchCompleted': self.batch_completed,
        }


def validate_submission(review_text, rating, proof) -> None:
    """Input checks in order; the first failure wins."""
    if not isinstance(review_text, str) or len(review_text) < config.MIN_REVIEW_LENGTH:
        raise ValidationError(f'Review text must be at least {config.MIN_REVIEW_LENGTH} characters')
    # bool is an int subclass; True must not pass as a rating of 1
    if isinstance(rating, bool) or not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
        raise ValidationError(f'Rating must be an integer between {MIN_RATING} and {MAX_RATING}')
    if not isinstance(proof, str) or not proof.strip():
        raise ValidationError('Proof of submission is required')


def submit_review(
    store,
    assignment_id: str,
    review_text: str,
    rating: int,
    proof: str,
    submitted_at: Optional[str] = None,
    reviewer_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SettlementReceipt:
    """
    Validate and settle one completed review.

    Args:
        store: LedgerStore
        assignment_id: Assignment being reviewed
        review_text: Review body (at least MIN_REVIEW_LENGTH characters)
        rating: Integer 1-5
        proof: Reference proving the review was published
        submitted_at: When the reviewer published it (defaults to now)
        reviewer_id: Caller identity; must match the assignment's reviewer when given
        now: Clock override for tests

    Returns:
        SettlementReceipt

    Raises:
        ValidationError: bad input, nothing was written
        NotFoundError: unknown, already approved or someone else's assignment
        ConflictError/StoreFailure: the settlement transaction did not commit
    """
    validate_submission(review_text, rating, proof)

    assignment = store.get_assignment(assignment_id)
    if not assignment or assignment.get('status') != AssignmentStatus.ASSIGNED:
        raise NotFoundError('Assignment not found or already processed')
    if reviewer_id and assignment['reviewerId'] != reviewer_id:
        logger.warning(f"User {reviewer_id} tried to submit assignment {assignment_id} of another reviewer")
        raise NotFoundError('Assignment not found or already processed')

    item = store.get_item(assignment['itemId'])
    if not item:
        raise NotFoundError(f"Item {assignment['itemId']} for assignment {assignment_id} not found")

    now_iso = (now or datetime.now(timezone.utc)).isoformat()
    review = {
        'reviewText': review_text,
        'rating': rating,
        'proof': proof.strip(),
        'submittedAt': submitted_at or now_iso,
    }
    transaction = {
        'transactionId': str(uuid.uuid4()),
        'userId': assignment['reviewerId'],
        'amount': CREDITS_PER_REVIEW,
        'type': TransactionType.EARNED,
        'description': f"Review completed for {item.get('name', item['itemId'])}",
        'referenceId': assignment_id,
        'createdAt': now_iso,
    }

    # Steps 1-4: any failure propagates and nothing is written
    store.settle_assignment(assignment, item['ownerId'], review, transaction, now_iso)
    logger.info(
        f"Settled assignment #{assignment.get('assignmentNumber')} ({assignment_id}): "
        f"reviewer {assignment['reviewerId']} earned {CREDITS_PER_REVIEW} credit"
    )

    receipt = SettlementReceipt(
        assignment_id=assignment_id,
        item_id=item['itemId'],
        reviewer_id=assignment['reviewerId'],
        transaction_id=transaction['transactionId'],
    )
    receipt.batch_completed = _settle_batch(store, assignment, now_iso)

    _notify(store, assignment, item, review)
    return receipt


def _settle_batch(store, assignment: Dict[str, Any], now_iso: str) -> bool:
    """
    Step 5. Complete the batch when every member is approved.

    The batch index is eventually consistent, so the assignment settled in
    this call is counted as approved whatever the index returns for it.
    """
    batch_id = assignment['batchId']
    try:
        members = store.assignments_for_batch(batch_id)
        statuses = {m['assignmentId']: m.get('status') for m in members}
        statuses[assignment['assignmentId']] = AssignmentStatus.APPROVED
        pending = [a for a, s in statuses.items() if s != AssignmentStatus.APPROVED]
        if pending:
            logger.info(f"Batch {batch_id} still has {len(pending)} pending assignment(s)")
            return False
        completed = store.complete_batch(batch_id, now_iso, len(statuses))
    except ReviewExchangeError as e:
        logger.error(f"Could not settle batch {batch_id}: {e}")
        return False

    if completed:
        logger.info(f"Batch {batch_id} completed with {len(statuses)} credit(s) earned")
    else:
        logger.info(f"Batch {batch_id} was already completed")
    return completed


def _notify(store, assignment: Dict[str, Any], item: Dict[str, Any], review: Dict[str, Any]) -> None:
    try:
        users = store.get_users([item['ownerId'], assignment['reviewerId']])
    except ReviewExchangeError as e:
        logger.error(f"Could not load users for settlement notifications: {e}")
        return
    reviewer = users.get(assignment['reviewerId'])
    owner = users.get(item['ownerId'])
    notify_item_reviewed(owner, reviewer, item, review)
    notify_review_completed(reviewer, item, review, CREDITS_PER_REVIEW)
