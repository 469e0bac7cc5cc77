"""
Admin operations: user profile overrides and the dashboard read model.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .errors import NotFoundError, ValidationError
from .logging import get_logger
from .models import AssignmentStatus, ItemStatus, TransactionType, UserRole
from .profile import collect_or_empty

logger = get_logger('admin')


def admin_adjustment(user_id: str, diff: int, now_iso: str) -> Dict[str, Any]:
    """Signed ledger entry for an admin balance change."""
    verb = 'added' if diff > 0 else 'removed'
    return {
        'transactionId': str(uuid.uuid4()),
        'userId': user_id,
        'amount': diff,
        'type': TransactionType.EARNED if diff > 0 else TransactionType.SPENT,
        'description': f'Admin adjustment: {verb} {abs(diff)} credits',
        'createdAt': now_iso,
    }


def validate_user_updates(updates: Dict[str, Any]) -> Dict[str, Any]:
    """Pick and check the admin-editable fields. At least one must be present."""
    fields = {}
    if 'creditBalance' in updates:
        balance = updates['creditBalance']
        if isinstance(balance, bool) or not isinstance(balance, int) or balance < 0:
            raise ValidationError('creditBalance must be a non-negative integer')
        fields['creditBalance'] = balance
    if 'role' in updates:
        if updates['role'] not in UserRole.ALL:
            raise ValidationError(f"role must be one of {', '.join(UserRole.ALL)}")
        fields['role'] = updates['role']
    if 'hasCompletedQualification' in updates:
        if not isinstance(updates['hasCompletedQualification'], bool):
            raise ValidationError('hasCompletedQualification must be a boolean')
        fields['hasCompletedQualification'] = updates['hasCompletedQualification']
    if not fields:
        raise ValidationError('No updatable fields provided')
    return fields


def update_user(store, user_id: str, updates: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Apply an admin override to a user's balance, role or qualification flag.

    The balance diff is computed against the stored balance and recorded as
    an earned/spent transaction in the same store transaction. A balance that
    changed since it was read fails with ConflictError.

    Returns:
        {'user': updated user, 'transaction': ledger entry or None}
    """
    fields = validate_user_updates(updates)
    now_iso = (now or datetime.now(timezone.utc)).isoformat()

    user = store.get_user(user_id)
    if not user:
        raise NotFoundError('User not found')

    current = user.get('creditBalance')
    transaction = None
    if 'creditBalance' in fields:
        diff = fields['creditBalance'] - int(current or 0)
        if diff:
            transaction = admin_adjustment(user_id, diff, now_iso)
        else:
            del fields['creditBalance']

    if fields:
        store.update_user_profile(
            user_id,
            fields,
            now_iso,
            expected_balance=None if current is None else int(current),
            transaction=transaction,
        )
        logger.info(f"Admin updated user {user_id}: {sorted(fields)}")
    else:
        logger.info(f"Admin update for user {user_id} changed nothing")

    return {'user': {**user, **fields}, 'transaction': transaction}


def _queue_hours(item: Dict[str, Any]) -> Optional[float]:
    queued_at, assigned_at = item.get('submittedToQueueAt'), item.get('assignedAt')
    if not queued_at or not assigned_at:
        return None
    delta = datetime.fromisoformat(assigned_at) - datetime.fromisoformat(queued_at)
    return delta.total_seconds() / 3600


def build_dashboard(store) -> Dict[str, Any]:
    """
    Admin read model over every user, item, assignment and credit transaction.

    The user list is required; the other collections degrade to empty lists.
    Items carry their owner, assignments their item and reviewer.
    """
    users = store.all_users()
    users_by_id = {u['userId']: u for u in users}

    items = collect_or_empty('items', store.all_items)
    assignments = collect_or_empty('assignments', store.all_assignments)
    transactions = collect_or_empty('credit transactions', store.all_transactions)

    items_by_id = {i['itemId']: i for i in items}
    items = [{**i, 'owner': users_by_id.get(i['ownerId'])} for i in items]
    assignments = [
        {**a, 'item': items_by_id.get(a['itemId']), 'reviewer': users_by_id.get(a['reviewerId'])}
        for a in assignments
    ]

    users.sort(key=lambda u: u.get('createdAt') or '', reverse=True)
    items.sort(key=lambda i: i.get('createdAt') or '', reverse=True)
    assignments.sort(key=lambda a: a.get('assignedAt') or '', reverse=True)
    transactions.sort(key=lambda t: t.get('createdAt') or '', reverse=True)

    waits = [h for h in (_queue_hours(i) for i in items) if h is not None]
    stats = {
        'totalUsers': len(users),
        'totalItems': len(items),
        'queuedItems': sum(1 for i in items if i.get('status') == ItemStatus.QUEUED),
        'activeReviews': sum(1 for a in assignments if a.get('status') == AssignmentStatus.ASSIGNED),
        'totalCreditsIssued': sum(
            int(t['amount']) for t in transactions if t.get('type') == TransactionType.EARNED
        ),
        'averageQueueHours': round(sum(waits) / len(waits), 1) if waits else None,
    }
    logger.info(f"Admin dashboard: {stats}")

    return {
        'users': users,
        'items': items,
        'assignments': assignments,
        'transactions': transactions,
        'stats': stats,
    }
