"""
Logging utilities for Lambda handlers and the assignment engine.
"""
import logging
import json

# Configure logger
logger = logging.getLogger('review_exchange')
logger.setLevel(logging.INFO)

# Add handler if not already configured
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))
    logger.addHandler(handler)

# Keys never written to the logs
REDACTED_KEYS = ('body', 'headers', 'multiValueHeaders')


def get_logger(component: str) -> logging.Logger:
    """Child logger for an engine component (e.g. 'allocator')."""
    return logger.getChild(component)


def log_event(event: dict, context=None) -> None:
    """Log incoming Lambda event (minus body/headers) with its request id."""
    try:
        safe_event = {k: v for k, v in (event or {}).items() if k not in REDACTED_KEYS}
        request_id = getattr(context, 'aws_request_id', None)
        if request_id:
            logger.info(f"Lambda event [{request_id}]: {json.dumps(safe_event, default=str)}")
        else:
            logger.info(f"Lambda event: {json.dumps(safe_event, default=str)}")
    except Exception as e:
        logger.warning(f"Could not log event: {e}")
