"""
SQS utility functions for outbound notification messages.
"""
import boto3
import json
from typing import Dict, Any
from .config import config
from .ledger import boto_config
from .logging import get_logger

logger = get_logger('sqs')

sqs = boto3.client('sqs', region_name=config.AWS_REGION, config=boto_config())


def send_message(queue_url: str, message_body: Dict[str, Any]) -> bool:
    """
    Send a single message to SQS queue.

    Never raises: outbound messages are a side channel and must not fail
    the operation that produced them.

    Args:
        queue_url: SQS queue URL
        message_body: Message body as dict (will be JSON serialized)

    Returns:
        True if sent successfully, False otherwise
    """
    if not queue_url:
        logger.info("No queue configured, skipping message")
        return False
    try:
        sqs.send_message(
            QueueUrl=queue_url,
            MessageBody=json.dumps(message_body, default=str)
        )
        logger.info(f"Message sent to {queue_url}")
        return True
    except Exception as e:
        logger.error(f"Error sending message to SQS: {e}")
        return False
