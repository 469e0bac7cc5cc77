"""
Assignment Allocator.

Turns one scheduled item into a numbered assignment for one reviewer. The
store offers conditional writes but the whole allocation spans several
tables, so it runs as a saga with explicit compensation:

    step  action                                        compensation on later failure
    ----  --------------------------------------------  -------------------------------
    1     put batch (active)                            delete batch
    2     draw assignment number from the sequence      (number is left unused)
    3     put assignment + claim reviewer slot          delete assignment, release slot
    4     item queued -> assigned (conditional)         -

A failure at step N runs the compensations of steps N-1..1 in reverse.
One item's failure is reported in its AllocationResult and never aborts
the cycle.
"""
import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from .config import config
from .errors import ConflictError, PartialCycleFailure, ReviewExchangeError
from .logging import get_logger
from .matching import eligible_reviewers
from .models import (
    AssignmentStatus,
    BatchStatus,
    BatchType,
    ItemStatus,
    SkipReason,
    SubscriptionTier,
)
from .notifications import notify_item_assigned
from .scheduler import build_cycle, load_backlog

logger = get_logger('allocator')


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AllocationResult:
    """Outcome of allocate() for a single item."""
    item_id: str
    assignment: Optional[Dict[str, Any]] = None
    skip_reason: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def created(self) -> bool:
        return self.assignment is not None


@dataclass
class CycleSummary:
    """Outcome of one allocation cycle."""
    items_considered: int = 0
    premium_assignments: int = 0
    free_assignments: int = 0
    skipped: int = 0
    failed: int = 0
    assignments: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def assignments_created(self) -> int:
        return self.premium_assignments + self.free_assignments

    def to_dict(self) -> Dict[str, Any]:
        if self.items_considered == 0:
            message = 'No items currently queued for review'
        else:
            message = (
                f"Created {self.assignments_created} review assignments "
                f"({self.premium_assignments} premium, {self.free_assignments} free)"
            )
        return {
            'message': message,
            'assignmentsCreated': self.assignments_created,
            'premiumAssignments': self.premium_assignments,
            'freeAssignments': self.free_assignments,
            'itemsConsidered': self.items_considered,
            'skipped': self.skipped,
            'failed': self.failed,
        }


class Allocator:
    """
    Allocates reviewers to queued items.

    Usage:
        allocator = Allocator(store, rng=random.Random(42))
        summary = allocator.run_cycle(max_assignments=10)
    """

    def __init__(
        self,
        store,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.rng = rng or random.Random(config.REVIEWER_SELECTION_SEED)
        self.clock = clock

    def choose_reviewer(self, candidates) -> str:
        """Uniform random pick. Sorting first makes a seeded rng fully deterministic."""
        return self.rng.choice(sorted(candidates))

    def allocate(self, item: Dict[str, Any], reviewer_id: Optional[str] = None) -> AllocationResult:
        """
        Allocate one reviewer to one item.

        Args:
            item: Item record (only 'itemId' is trusted; the item is re-read)
            reviewer_id: Pin the reviewer instead of drawing from the eligible set

        Returns:
            AllocationResult with either the assignment or a skip reason
        """
        item_id = item['itemId']
        excluded = set()
        last_error = None

        for attempt in range(config.ALLOCATION_CONFLICT_RETRIES + 1):
            chosen = None
            try:
                current = self.store.get_item(item_id)
                if not current or current.get('status') != ItemStatus.QUEUED:
                    logger.info(f"Item {item_id} is no longer queued, skipping")
                    return AllocationResult(item_id, skip_reason=SkipReason.NOT_QUEUED)

                if reviewer_id:
                    candidates = {reviewer_id} - excluded
                else:
                    candidates = eligible_reviewers(self.store, current) - excluded
                if not candidates:
                    logger.info(f"No eligible reviewer for item {item_id}, leaving it queued")
                    return AllocationResult(item_id, skip_reason=SkipReason.NO_ELIGIBLE_REVIEWER)

                chosen = self.choose_reviewer(candidates)
                assignment = self._create_assignment(current, chosen)
                return AllocationResult(item_id, assignment=assignment)

            except ConflictError as e:
                # Reviewer slot or item claimed concurrently; retry this item only
                logger.warning(f"Conflict allocating item {item_id} (attempt {attempt + 1}): {e}")
                if chosen:
                    excluded.add(chosen)
                last_error = e
            except ReviewExchangeError as e:
                logger.error(f"Allocation failed for item {item_id}: {e}")
                return AllocationResult(item_id, skip_reason=SkipReason.FAILED, error=e)

        return AllocationResult(item_id, skip_reason=SkipReason.FAILED, error=last_error)

    def _create_assignment(self, item: Dict[str, Any], reviewer_id: str) -> Dict[str, Any]:
        """Run the saga for one (item, reviewer) pair. Raises after compensating."""
        now = self.clock()
        now_iso = now.isoformat()

        batch = {
            'batchId': str(uuid.uuid4()),
            'reviewerId': reviewer_id,
            'assignmentType': BatchType.SINGLE,
            'status': BatchStatus.ACTIVE,
            'createdAt': now_iso,
        }
        self.store.create_batch(batch)

        try:
            assignment = {
                'assignmentId': str(uuid.uuid4()),
                'batchId': batch['batchId'],
                'itemId': item['itemId'],
                'reviewerId': reviewer_id,
                'assignmentNumber': self.store.next_assignment_number(),
                'assignedAt': now_iso,
                'dueAt': (now + timedelta(days=config.ASSIGNMENT_DUE_DAYS)).isoformat(),
                'status': AssignmentStatus.ASSIGNED,
            }
            self.store.create_assignment(assignment, config.MAX_ACTIVE_ASSIGNMENTS_PER_REVIEWER)
        except Exception:
            self._compensate(batch, None)
            raise

        try:
            self.store.mark_item_assigned(item['itemId'], assignment['assignmentId'], now_iso)
        except Exception:
            self._compensate(batch, assignment)
            raise

        logger.info(
            f"Created assignment #{assignment['assignmentNumber']} for item {item['itemId']} "
            f"(reviewer {reviewer_id}, due {assignment['dueAt']})"
        )
        return assignment

    def _compensate(self, batch: Dict[str, Any], assignment: Optional[Dict[str, Any]]) -> None:
        """Undo completed saga steps in reverse. Failures here leave an orphan and are logged."""
        if assignment is not None:
            try:
                self.store.delete_assignment(assignment)
                logger.info(f"Compensated: deleted assignment {assignment['assignmentId']}")
            except ReviewExchangeError as e:
                logger.error(f"Compensation failed, orphaned assignment {assignment['assignmentId']}: {e}")
        try:
            self.store.delete_batch(batch['batchId'])
            logger.info(f"Compensated: deleted batch {batch['batchId']}")
        except ReviewExchangeError as e:
            logger.error(f"Compensation failed, orphaned batch {batch['batchId']}: {e}")

    def run_cycle(self, max_assignments: Optional[int] = None, ratio: Optional[int] = None) -> CycleSummary:
        """
        Run one allocation cycle over the current backlog.

        Every call recomputes backlog and eligibility from the store, so
        overlapping cycles coordinate only through store conditions.
        """
        if max_assignments is None:
            max_assignments = config.DEFAULT_MAX_ASSIGNMENTS

        summary = CycleSummary()
        backlog = load_backlog(self.store)
        if not backlog:
            logger.info("No items queued, nothing to allocate")
            return summary

        cycle = build_cycle(backlog, max_assignments, ratio)
        summary.items_considered = len(cycle)

        for item in cycle:
            try:
                result = self.allocate(item)
            except Exception as e:
                failure = PartialCycleFailure(item['itemId'], e)
                logger.exception(str(failure))
                result = AllocationResult(item['itemId'], skip_reason=SkipReason.FAILED, error=failure)

            if not result.created:
                if result.skip_reason == SkipReason.FAILED:
                    summary.failed += 1
                else:
                    summary.skipped += 1
                continue

            if item['ownerTier'] == SubscriptionTier.PREMIUM:
                summary.premium_assignments += 1
            else:
                summary.free_assignments += 1
            summary.assignments.append(result.assignment)
            notify_item_assigned(item.get('owner'), item, result.assignment)

        logger.info(
            f"Cycle complete: {summary.assignments_created} created "
            f"({summary.premium_assignments} premium, {summary.free_assignments} free), "
            f"{summary.skipped} skipped, {summary.failed} failed of {summary.items_considered} considered"
        )
        return summary
