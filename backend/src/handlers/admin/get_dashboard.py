"""
Admin Dashboard Handler.
GET /admin/dashboard
"""
from shared.admin import build_dashboard
from shared.auth import get_user_sub, is_admin
from shared.ledger import LedgerStore
from shared.logging import log_event
from shared.utils import error_response, format_response

store = LedgerStore()


def handler(event, context):
    log_event(event, context)

    if not get_user_sub(event):
        return format_response(401, {'success': False, 'error': 'Unauthorized'})
    if not is_admin(event):
        return format_response(403, {'success': False, 'error': 'Admin access required'})

    try:
        dashboard = build_dashboard(store)
    except Exception as e:
        return error_response(e)

    return format_response(200, {'success': True, 'data': dashboard})
