"""
Run Allocation Cycle Handler.
Triggered by EventBridge on a schedule, or manually by an admin via
POST /admin/assignments/cycle  Body: { "maxAssignments": 10 }
"""
from shared.allocator import Allocator
from shared.auth import is_admin
from shared.config import config
from shared.errors import ValidationError
from shared.ledger import LedgerStore
from shared.logging import logger, log_event
from shared.utils import error_response, format_response, is_api_request, parse_body

store = LedgerStore()


def parse_max_assignments(payload: dict) -> int:
    value = payload.get('maxAssignments', config.DEFAULT_MAX_ASSIGNMENTS)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError('maxAssignments must be a non-negative integer')
    return value


def handler(event, context):
    """
    Allocate reviewers to queued items in tier-fair order.

    Scheduled invocations return the summary dict directly; API invocations
    return an API Gateway response. An empty queue is a success.
    """
    log_event(event, context)
    api = is_api_request(event)

    try:
        if api:
            if not is_admin(event):
                return format_response(403, {'success': False, 'error': 'Admin access required'})
            payload = parse_body(event)
        else:
            payload = event.get('detail') or {}
        max_assignments = parse_max_assignments(payload)

        summary = Allocator(store).run_cycle(max_assignments=max_assignments)
        result = {'success': True, **summary.to_dict()}
        logger.info(result['message'])

        return format_response(200, result) if api else result

    except Exception as e:
        if api:
            return error_response(e)
        logger.exception(f"Allocation cycle failed: {e}")
        raise
