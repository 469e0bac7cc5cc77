"""
Eligibility Matcher.

Narrows the reviewer pool for an item under hard constraints. The filters
are independent set differences, so their order does not matter:
- must have completed qualification
- must not own the item
- must never have reviewed anything from this owner (lifetime, owner-scoped)
- must be below the active assignment limit
"""
from typing import Any, Dict, Optional, Set

from .config import config
from .logging import get_logger

logger = get_logger('matching')


def eligible_reviewers(store, item: Dict[str, Any], max_active: Optional[int] = None) -> Set[str]:
    """
    Compute the set of reviewer ids that may be assigned to this item.

    Read-only. An empty set is a normal outcome, not an error.

    Args:
        store: LedgerStore (or anything with the same read methods)
        item: Item record with at least 'itemId' and 'ownerId'
        max_active: Active assignment limit per reviewer (defaults to config)

    Returns:
        Set of eligible reviewer user ids
    """
    if max_active is None:
        max_active = config.MAX_ACTIVE_ASSIGNMENTS_PER_REVIEWER

    owner_id = item['ownerId']
    candidates = store.qualified_reviewer_ids()
    candidates.discard(owner_id)

    previous_reviewers = store.reviewers_of_owner(owner_id)
    busy_reviewers = {
        reviewer_id
        for reviewer_id, count in store.active_assignment_counts().items()
        if count >= max_active
    }

    eligible = candidates - previous_reviewers - busy_reviewers
    logger.info(
        f"Item {item['itemId']}: {len(eligible)} eligible of {len(candidates)} qualified "
        f"({len(previous_reviewers)} reviewed owner before, {len(busy_reviewers)} busy)"
    )
    return eligible


def can_review(store, reviewer_id: str, item: Dict[str, Any]) -> bool:
    """Owner and relationship checks for one reviewer (used by reviewer-initiated requests)."""
    if item['ownerId'] == reviewer_id:
        return False
    return reviewer_id not in store.reviewers_of_owner(item['ownerId'])
