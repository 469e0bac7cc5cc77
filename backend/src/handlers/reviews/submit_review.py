"""
Submit Review Handler.
POST /reviewer/assignments/{assignmentId}/review
Body: { "reviewText": "...", "rating": 5, "proof": "https://...", "submittedAt": "2026-01-31T10:00:00+00:00" }
"""
from shared.auth import get_user_sub
from shared.ledger import LedgerStore
from shared.logging import logger, log_event
from shared.settlement import submit_review
from shared.utils import error_response, format_response, get_path_param, parse_body

store = LedgerStore()


def handler(event, context):
    log_event(event, context)

    reviewer_id = get_user_sub(event)
    if not reviewer_id:
        return format_response(401, {'success': False, 'error': 'Unauthorized'})

    assignment_id = get_path_param(event, 'assignmentId')
    if not assignment_id:
        return format_response(400, {'success': False, 'error': 'Missing assignmentId'})

    body = parse_body(event)
    try:
        receipt = submit_review(
            store,
            assignment_id,
            review_text=body.get('reviewText'),
            rating=body.get('rating'),
            proof=body.get('proof'),
            submitted_at=body.get('submittedAt'),
            reviewer_id=reviewer_id,
        )
    except Exception as e:
        logger.warning(f"Review submission for {assignment_id} rejected: {e}")
        return error_response(e)

    return format_response(200, {'success': True, **receipt.to_dict()})
