"""
Submit To Queue Handler.
POST /items/{itemId}/queue
Spends one of the owner's credits to put a draft item in the review queue.
"""
from shared.auth import get_user_sub
from shared.ledger import LedgerStore
from shared.logging import log_event
from shared.queue_submission import submit_to_queue
from shared.utils import error_response, format_response, get_path_param

store = LedgerStore()


def handler(event, context):
    log_event(event, context)

    owner_id = get_user_sub(event)
    if not owner_id:
        return format_response(401, {'success': False, 'error': 'Unauthorized'})

    item_id = get_path_param(event, 'itemId')
    if not item_id:
        return format_response(400, {'success': False, 'error': 'Missing itemId'})

    try:
        item = submit_to_queue(store, owner_id, item_id)
    except Exception as e:
        return error_response(e)

    return format_response(200, {
        'success': True,
        'message': 'Item submitted for review! You will be notified by email when a reviewer is assigned.',
        'item': {
            'itemId': item['itemId'],
            'name': item.get('name'),
            'status': item['status'],
            'submittedToQueueAt': item['submittedToQueueAt'],
        }
    })
