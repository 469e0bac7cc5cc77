"""
Outbound notifications (fire-and-forget).

Each helper builds a message for the email integration and publishes it to
the notifications queue. Failures are logged by send_message and reported as
False; nothing here raises into allocation or settlement.
"""
import functools
from typing import Any, Dict, Optional

from .config import config
from .logging import get_logger
from .models import NotificationEvent
from .sqs import send_message

logger = get_logger('notifications')

SNIPPET_LENGTH = 100


def best_effort(func):
    """Log and swallow any failure building or publishing a notification."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            logger.error(f"Notification {func.__name__} failed (non-critical): {e}")
            return False
    return wrapper


def publish(event_type: str, user: Optional[Dict[str, Any]], custom_data: Dict[str, Any]) -> bool:
    """Publish one notification for a user. Users without an email are skipped."""
    email = (user or {}).get('email')
    if not email:
        logger.warning(f"No email for {event_type} notification, skipping")
        return False
    return send_message(config.NOTIFICATIONS_QUEUE_URL, {
        'eventType': event_type,
        'userEmail': email,
        'customData': custom_data,
    })


@best_effort
def notify_item_assigned(owner: Dict[str, Any], item: Dict[str, Any], assignment: Dict[str, Any]) -> bool:
    """Tell the owner a reviewer was assigned to their item."""
    return publish(NotificationEvent.ITEM_ASSIGNED, owner, {
        'itemName': item.get('name'),
        'ownerName': (owner or {}).get('name'),
        'assignmentNumber': assignment['assignmentNumber'],
        'assignmentDate': assignment['assignedAt'],
        'dueDate': assignment['dueAt'],
    })


@best_effort
def notify_review_assigned(reviewer: Dict[str, Any], item: Dict[str, Any], assignment: Dict[str, Any]) -> bool:
    """Tell a reviewer which item they picked up."""
    return publish(NotificationEvent.REVIEW_ASSIGNED, reviewer, {
        'itemName': item.get('name'),
        'assignmentNumber': assignment['assignmentNumber'],
        'assignmentDate': assignment['assignedAt'],
        'dueDate': assignment['dueAt'],
    })


def review_snippet(text: str) -> str:
    if len(text) <= SNIPPET_LENGTH:
        return text
    return text[:SNIPPET_LENGTH] + '...'


@best_effort
def notify_item_reviewed(
    owner: Dict[str, Any],
    reviewer: Optional[Dict[str, Any]],
    item: Dict[str, Any],
    review: Dict[str, Any],
) -> bool:
    """Tell the owner their item received a review."""
    return publish(NotificationEvent.ITEM_REVIEWED, owner, {
        'itemName': item.get('name'),
        'ownerName': (owner or {}).get('name'),
        'reviewerName': (reviewer or {}).get('name'),
        'rating': review['rating'],
        'reviewTextSnippet': review_snippet(review['reviewText']),
        'reviewCompletionDate': review['submittedAt'],
        'proof': review['proof'],
    })


@best_effort
def notify_review_completed(
    reviewer: Dict[str, Any],
    item: Dict[str, Any],
    review: Dict[str, Any],
    credits_earned: int,
) -> bool:
    """Tell the reviewer they earned credit."""
    return publish(NotificationEvent.REVIEW_COMPLETED, reviewer, {
        'itemName': item.get('name'),
        'reviewerName': (reviewer or {}).get('name'),
        'rating': review['rating'],
        'creditsEarned': credits_earned,
        'completionDate': review['submittedAt'],
    })
