"""
Profile read model: everything the dashboard shows for one user.
Purely derived from the ledger; holds no invariants of its own.
"""
from typing import Any, Callable, Dict, List

from .config import config
from .errors import NotFoundError, ReviewExchangeError
from .logging import get_logger
from .models import AssignmentStatus, TransactionType

logger = get_logger('profile')


def collect_or_empty(label: str, fetch: Callable[[], List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """Secondary collections degrade to empty lists instead of failing the profile."""
    try:
        return fetch()
    except ReviewExchangeError as e:
        logger.error(f"Could not fetch {label}: {e}")
        return []


def build_profile(store, user_id: str) -> Dict[str, Any]:
    user = store.get_user(user_id)
    if not user:
        raise NotFoundError('User not found')

    items = collect_or_empty('items', lambda: store.items_for_owner(user_id))
    assignments = collect_or_empty('assignments', lambda: store.assignments_for_reviewer(user_id))
    transactions = collect_or_empty(
        'credit transactions',
        lambda: store.transactions_for_user(user_id, config.PROFILE_TRANSACTIONS_LIMIT),
    )
    relationships = collect_or_empty('relationships', lambda: store.relationships_for_reviewer(user_id))

    items.sort(key=lambda i: i.get('createdAt') or '', reverse=True)
    assignments.sort(key=lambda a: a.get('assignedAt') or '', reverse=True)
    relationships.sort(key=lambda r: r.get('createdAt') or '', reverse=True)

    stats = {
        'totalItems': len(items),
        'totalReviews': sum(1 for a in assignments if a.get('status') == AssignmentStatus.APPROVED),
        'activeReviews': sum(1 for a in assignments if a.get('status') == AssignmentStatus.ASSIGNED),
        'totalCreditsEarned': sum(
            int(t['amount']) for t in transactions if t.get('type') == TransactionType.EARNED
        ),
        'totalCreditsSpent': sum(
            abs(int(t['amount'])) for t in transactions if t.get('type') == TransactionType.SPENT
        ),
        'currentBalance': int(user.get('creditBalance', 0)),
    }
    logger.info(f"Profile for {user_id}: {stats}")

    return {
        'user': user,
        'items': items,
        'reviewAssignments': assignments,
        'creditTransactions': transactions,
        'reviewRelationships': relationships,
        'stats': stats,
    }
