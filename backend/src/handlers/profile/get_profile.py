"""
Get Profile Handler.
GET /profile                      (caller's own profile)
GET /admin/users/{userId}/profile (admin only)
"""
from shared.auth import get_user_sub, is_admin
from shared.ledger import LedgerStore
from shared.logging import log_event
from shared.profile import build_profile
from shared.utils import error_response, format_response, get_path_param

store = LedgerStore()


def handler(event, context):
    log_event(event, context)

    caller_id = get_user_sub(event)
    if not caller_id:
        return format_response(401, {'success': False, 'error': 'Unauthorized'})

    user_id = get_path_param(event, 'userId') or caller_id
    if user_id != caller_id and not is_admin(event):
        return format_response(403, {'success': False, 'error': 'Admin access required'})

    try:
        profile = build_profile(store, user_id)
    except Exception as e:
        return error_response(e)

    return format_response(200, {'success': True, 'data': profile})
