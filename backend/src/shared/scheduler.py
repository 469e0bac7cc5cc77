"""
Tiered Fair Scheduler.

Orders the queued backlog into one allocation cycle. Within every run of
ratio + 1 positions, the first `ratio` prefer premium owners and the last
prefers free owners. A preferred tier that has run dry falls back to the
other tier so a depleted tier never stalls allocation. FIFO order is kept
within each tier, so no item is overtaken by a later item of its own tier.
"""
from collections import deque
from typing import Any, Dict, List

from .config import config
from .logging import get_logger
from .models import SubscriptionTier

logger = get_logger('scheduler')


def queue_order_key(item: Dict[str, Any]):
    """Global FIFO: queue entry time, then item id for equal timestamps."""
    return (item.get('submittedToQueueAt') or '', item['itemId'])


def build_cycle(queued_items: List[Dict[str, Any]], max_slots: int, ratio: int = None) -> List[Dict[str, Any]]:
    """
    Build one cycle's ordered work list.

    Args:
        queued_items: Queued items, each tagged with 'ownerTier'
        max_slots: Upper bound on the cycle length
        ratio: Premium slots per free slot (defaults to config)

    Returns:
        At most max_slots items in the order they should be allocated
    """
    if ratio is None:
        ratio = config.PREMIUM_TO_FREE_RATIO
    if ratio < 0:
        raise ValueError(f"Premium to free ratio must be >= 0, got {ratio}")
    if max_slots <= 0:
        return []

    ordered = sorted(queued_items, key=queue_order_key)
    premium = deque(i for i in ordered if i.get('ownerTier') == SubscriptionTier.PREMIUM)
    free = deque(i for i in ordered if i.get('ownerTier') != SubscriptionTier.PREMIUM)

    cycle = []
    while (premium or free) and len(cycle) < max_slots:
        position = len(cycle) % (ratio + 1)
        preferred, fallback = (premium, free) if position < ratio else (free, premium)
        source = preferred if preferred else fallback
        cycle.append(source.popleft())

    logger.info(
        f"Built cycle of {len(cycle)} from backlog of {len(ordered)} "
        f"({len(premium)} premium and {len(free)} free left queued)"
    )
    return cycle


def load_backlog(store) -> List[Dict[str, Any]]:
    """
    Read all queued items and tag each with its owner's tier at read time.

    Owners missing from the user table are treated as free tier. The owner
    record is attached as 'owner' for notifications.
    """
    items = store.queued_items()
    if not items:
        return []

    owners = store.get_users(i['ownerId'] for i in items)
    backlog = []
    for item in items:
        owner = owners.get(item['ownerId'], {})
        backlog.append({**item, 'owner': owner, 'ownerTier': SubscriptionTier.of(owner)})
    return backlog
