"""
Common utility functions for Lambda handlers.
"""
import json
from decimal import Decimal
from typing import Any, Dict

from .errors import ReviewExchangeError
from .logging import logger


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal types from DynamoDB."""

    def default(self, o):
        if isinstance(o, Decimal):
            # Convert to int if it's a whole number, otherwise float
            if o % 1 == 0:
                return int(o)
            return float(o)
        if isinstance(o, set):
            return sorted(o)
        return super().default(o)


def format_response(
    status_code: int,
    body: Any,
    headers: Dict[str, str] = None
) -> Dict[str, Any]:
    """
    Format a standard API Gateway response with CORS headers.

    Args:
        status_code: HTTP status code
        body: Response body (will be JSON serialized)
        headers: Additional headers to include

    Returns:
        API Gateway response dict
    """
    default_headers = {
        'Access-Control-Allow-Origin': '*',
        'Access-Control-Allow-Credentials': True,
        'Content-Type': 'application/json'
    }

    if headers:
        default_headers.update(headers)

    return {
        'statusCode': status_code,
        'headers': default_headers,
        'body': json.dumps(body, cls=DecimalEncoder)
    }


def error_response(error: Exception) -> Dict[str, Any]:
    """
    Map an exception onto an API Gateway response.

    Known errors keep their message (it is meant for the caller); anything
    else is logged with its traceback and reported as a plain 500.
    """
    if isinstance(error, ReviewExchangeError):
        body = {'success': False, 'error': str(error)}
        if error.retryable:
            body['retryable'] = True
        return format_response(error.status_code, body)

    logger.exception(f"Unhandled error: {error}")
    return format_response(500, {'success': False, 'error': 'Internal Server Error'})


def parse_body(event: dict) -> dict:
    """
    Safely parse JSON body from API Gateway event.

    Args:
        event: API Gateway Lambda proxy event

    Returns:
        Parsed body dict or empty dict if invalid
    """
    try:
        body = event.get('body') or '{}'
        if isinstance(body, str):
            body = json.loads(body)
        return body if isinstance(body, dict) else {}
    except (json.JSONDecodeError, TypeError):
        return {}


def get_path_param(event: dict, param_name: str) -> str:
    """Extract path parameter from event."""
    try:
        return event['pathParameters'][param_name]
    except (KeyError, TypeError):
        return None


def is_api_request(event: dict) -> bool:
    """True for API Gateway proxy events, False for scheduled (EventBridge) invocations."""
    return 'httpMethod' in event or 'requestContext' in event
