"""
Data models and status constants for the review exchange.
Item lifecycle: Draft → Queued → Assigned → Reviewed → Verified/Rejected
(the last step is an admin action outside this backend).
"""


class ItemStatus:
    """Item lifecycle statuses."""
    DRAFT = 'draft'
    QUEUED = 'queued'
    ASSIGNED = 'assigned'
    REVIEWED = 'reviewed'
    VERIFIED = 'verified'
    REJECTED = 'rejected'


class AssignmentStatus:
    """Assignment statuses."""
    ASSIGNED = 'assigned'
    APPROVED = 'approved'


class BatchStatus:
    """Assignment batch statuses."""
    ACTIVE = 'active'
    COMPLETED = 'completed'


class BatchType:
    """How many assignments a batch groups. The allocator issues single-assignment batches."""
    SINGLE = 'single'


class TransactionType:
    """Credit ledger entry types."""
    EARNED = 'earned'
    SPENT = 'spent'


class SubscriptionTier:
    """Owner subscription tiers used for scheduling priority."""
    PREMIUM = 'premium'
    FREE = 'free'

    @staticmethod
    def of(user: dict) -> str:
        """Tier of a user record; anything but 'premium' (including absent) is free."""
        status = (user or {}).get('subscriptionStatus')
        return SubscriptionTier.PREMIUM if status == SubscriptionTier.PREMIUM else SubscriptionTier.FREE


class UserRole:
    """Roles an admin can grant."""
    ADMIN = 'admin'
    MODERATOR = 'moderator'
    USER = 'user'

    ALL = (ADMIN, MODERATOR, USER)


class SkipReason:
    """Why the allocator did not create an assignment for an item."""
    NO_ELIGIBLE_REVIEWER = 'no_eligible_reviewer'
    NOT_QUEUED = 'not_queued'
    FAILED = 'failed'


class NotificationEvent:
    """Outbound notification event types."""
    ITEM_ASSIGNED = 'item_assigned_to_reviewer'
    REVIEW_ASSIGNED = 'review_assigned'
    ITEM_REVIEWED = 'item_reviewed_owner'
    REVIEW_COMPLETED = 'review_completed'


# Counter name for the global assignment number sequence
ASSIGNMENT_NUMBER_COUNTER = 'assignmentNumber'
