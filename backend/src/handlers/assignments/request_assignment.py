"""
Request Assignment Handler.
POST /reviewer/assignments
A qualified reviewer asks for the next item to review.
"""
from shared.allocator import Allocator
from shared.assignment_requests import request_assignment
from shared.auth import get_user_sub
from shared.ledger import LedgerStore
from shared.logging import logger, log_event
from shared.utils import error_response, format_response

store = LedgerStore()


def handler(event, context):
    log_event(event, context)

    reviewer_id = get_user_sub(event)
    if not reviewer_id:
        return format_response(401, {'success': False, 'error': 'Unauthorized'})

    try:
        result = request_assignment(store, Allocator(store), reviewer_id)
    except Exception as e:
        return error_response(e)

    assignment = result['assignment']
    item = result['item']
    logger.info(f"Reviewer {reviewer_id} picked up assignment #{assignment['assignmentNumber']}")

    return format_response(200, {
        'success': True,
        'message': f"Assignment created successfully! You have been assigned to review \"{item.get('name')}\".",
        'assignment': {
            'id': assignment['assignmentId'],
            'assignmentNumber': assignment['assignmentNumber'],
            'itemName': item.get('name'),
            'dueDate': assignment['dueAt'],
        }
    })
