"""
Admin Update User Handler.
PUT /admin/users/{userId}
Sets a user's creditBalance, role or hasCompletedQualification. Balance
changes are recorded as an admin adjustment in the credit ledger.
"""
from shared.admin import update_user
from shared.auth import get_user_sub, is_admin
from shared.ledger import LedgerStore
from shared.logging import log_event
from shared.utils import error_response, format_response, get_path_param, parse_body

store = LedgerStore()


def handler(event, context):
    log_event(event, context)

    if not get_user_sub(event):
        return format_response(401, {'success': False, 'error': 'Unauthorized'})
    if not is_admin(event):
        return format_response(403, {'success': False, 'error': 'Admin access required'})

    user_id = get_path_param(event, 'userId')
    if not user_id:
        return format_response(400, {'success': False, 'error': 'Missing userId'})

    try:
        result = update_user(store, user_id, parse_body(event))
    except Exception as e:
        return error_response(e)

    return format_response(200, {
        'success': True,
        'message': 'User profile updated successfully',
        'user': result['user'],
        'transaction': result['transaction'],
    })
