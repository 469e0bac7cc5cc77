"""
Queue submission: an owner spends one credit to put a draft item in the review queue.
Free-tier owners are limited to FREE_TIER_MONTHLY_SUBMISSIONS per calendar month (UTC).
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .config import config
from .errors import ConflictError, NotFoundError, ValidationError
from .logging import get_logger
from .models import ItemStatus, SubscriptionTier, TransactionType

logger = get_logger('queue_submission')

QUEUE_SUBMISSION_COST = 1


def monthly_exchange_update(owner: Dict[str, Any], now: datetime) -> Optional[Dict[str, Any]]:
    """
    Next value of the free-tier monthly submission counter, or None for premium owners.

    The counter resets when the stored month differs from the current one.

    Raises:
        ValidationError: the owner has used up this month's submissions
    """
    if SubscriptionTier.of(owner) == SubscriptionTier.PREMIUM:
        return None

    month = now.strftime('%Y-%m')
    previous = owner.get('exchangesThisMonth')
    used = int(previous or 0) if owner.get('exchangesMonth') == month else 0
    if used >= config.FREE_TIER_MONTHLY_SUBMISSIONS:
        raise ValidationError(
            f'You have reached your monthly submission limit of '
            f'{config.FREE_TIER_MONTHLY_SUBMISSIONS} items for the free tier'
        )
    return {
        'month': month,
        'count': used + 1,
        'previous': None if previous is None else int(previous),
    }


def submit_to_queue(store, owner_id: str, item_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Move a draft item into the review queue and charge its owner one credit.

    Returns:
        The item as queued

    Raises:
        NotFoundError: item missing or owned by someone else
        ConflictError: item is not a draft, or balance/counter changed concurrently
        ValidationError: not enough credits, or free-tier monthly limit reached
    """
    now = now or datetime.now(timezone.utc)
    now_iso = now.isoformat()

    item = store.get_item(item_id)
    if not item or item.get('ownerId') != owner_id:
        raise NotFoundError('Item not found')
    if item.get('status') != ItemStatus.DRAFT:
        raise ConflictError(f"Item is {item.get('status')}, only drafts can be submitted to the queue")

    owner = store.get_user(owner_id)
    if not owner:
        raise NotFoundError('User not found')
    if int(owner.get('creditBalance', 0)) < QUEUE_SUBMISSION_COST:
        raise ValidationError('You need at least 1 credit to submit an item to the review queue')

    exchange = monthly_exchange_update(owner, now)
    transaction = {
        'transactionId': str(uuid.uuid4()),
        'userId': owner_id,
        'amount': -QUEUE_SUBMISSION_COST,
        'type': TransactionType.SPENT,
        'description': f"Queue submission for {item.get('name', item_id)}",
        'referenceId': item_id,
        'createdAt': now_iso,
    }
    store.enqueue_item(item, owner, transaction, now_iso, exchange)

    logger.info(f"Item {item_id} queued by {owner_id} ({SubscriptionTier.of(owner)} tier)")
    return {**item, 'status': ItemStatus.QUEUED, 'submittedToQueueAt': now_iso}
