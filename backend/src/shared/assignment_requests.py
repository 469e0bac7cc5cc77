"""
Reviewer-initiated assignment requests.

A qualified reviewer without active work asks for an item. The backlog is
walked in the same tier-fair order the scheduled cycle uses, and the first
item the reviewer may review is allocated through the regular allocator
saga with the reviewer pinned.
"""
from typing import Any, Dict

from .config import config
from .errors import ConflictError, NotFoundError, ValidationError
from .logging import get_logger
from .matching import can_review
from .models import SkipReason
from .notifications import notify_item_assigned, notify_review_assigned
from .scheduler import build_cycle, load_backlog

logger = get_logger('assignment_requests')


def request_assignment(store, allocator, reviewer_id: str) -> Dict[str, Any]:
    """
    Allocate the next suitable queued item to this reviewer.

    Returns:
        {'assignment': ..., 'item': ...}

    Raises:
        NotFoundError: unknown reviewer, or nothing suitable in the queue
        ValidationError: reviewer not qualified or already at the active limit
    """
    reviewer = store.get_user(reviewer_id)
    if not reviewer:
        raise NotFoundError('User not found')
    if not reviewer.get('hasCompletedQualification'):
        raise ValidationError('User must complete qualification before requesting assignments')
    active = store.active_assignment_counts().get(reviewer_id, 0)
    if active >= config.MAX_ACTIVE_ASSIGNMENTS_PER_REVIEWER:
        raise ValidationError(
            'You already have an active assignment. Please complete your current review before requesting another.'
        )

    backlog = load_backlog(store)
    for item in build_cycle(backlog, len(backlog)):
        if not can_review(store, reviewer_id, item):
            continue
        result = allocator.allocate(item, reviewer_id=reviewer_id)
        if result.created:
            notify_review_assigned(reviewer, item, result.assignment)
            notify_item_assigned(item.get('owner'), item, result.assignment)
            return {'assignment': result.assignment, 'item': item}
        logger.info(f"Could not allocate item {item['itemId']} to {reviewer_id}: {result.skip_reason}")
        if result.skip_reason == SkipReason.NO_ELIGIBLE_REVIEWER:
            # Pinned reviewer lost its free slot to a concurrent allocation
            raise ConflictError('You already have an active assignment')
        if result.skip_reason == SkipReason.FAILED:
            raise result.error

    raise NotFoundError('No items are currently available for review. Please check back later.')
