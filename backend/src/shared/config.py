"""
Configuration module for Lambda handlers.
Loads all environment variables needed by the review exchange.
"""
import os


def _optional_int(name: str):
    value = os.environ.get(name, '')
    return int(value) if value else None


class Config:
    """Centralized configuration from environment variables."""

    # AWS Region
    AWS_REGION = os.environ.get('AWS_REGION', 'us-east-1')

    # DynamoDB Tables
    USERS_TABLE = os.environ.get('USERS_TABLE', '')
    ITEMS_TABLE = os.environ.get('ITEMS_TABLE', '')
    BATCHES_TABLE = os.environ.get('BATCHES_TABLE', '')
    ASSIGNMENTS_TABLE = os.environ.get('ASSIGNMENTS_TABLE', '')
    RELATIONSHIPS_TABLE = os.environ.get('RELATIONSHIPS_TABLE', '')
    TRANSACTIONS_TABLE = os.environ.get('TRANSACTIONS_TABLE', '')
    COUNTERS_TABLE = os.environ.get('COUNTERS_TABLE', '')

    # SQS Queues
    NOTIFICATIONS_QUEUE_URL = os.environ.get('NOTIFICATIONS_QUEUE_URL', '')

    # Store call bounds (seconds / attempts)
    STORE_CONNECT_TIMEOUT = float(os.environ.get('STORE_CONNECT_TIMEOUT', '2'))
    STORE_READ_TIMEOUT = float(os.environ.get('STORE_READ_TIMEOUT', '5'))
    STORE_MAX_ATTEMPTS = int(os.environ.get('STORE_MAX_ATTEMPTS', '3'))

    # Scheduling
    PREMIUM_TO_FREE_RATIO = int(os.environ.get('PREMIUM_TO_FREE_RATIO', '3'))
    DEFAULT_MAX_ASSIGNMENTS = int(os.environ.get('DEFAULT_MAX_ASSIGNMENTS', '10'))

    # Allocation
    ASSIGNMENT_DUE_DAYS = int(os.environ.get('ASSIGNMENT_DUE_DAYS', '7'))
    MAX_ACTIVE_ASSIGNMENTS_PER_REVIEWER = int(os.environ.get('MAX_ACTIVE_ASSIGNMENTS_PER_REVIEWER', '1'))
    ALLOCATION_CONFLICT_RETRIES = int(os.environ.get('ALLOCATION_CONFLICT_RETRIES', '2'))
    REVIEWER_SELECTION_SEED = _optional_int('REVIEWER_SELECTION_SEED')

    # Settlement
    MIN_REVIEW_LENGTH = int(os.environ.get('MIN_REVIEW_LENGTH', '25'))

    # Queue submission limits
    FREE_TIER_MONTHLY_SUBMISSIONS = int(os.environ.get('FREE_TIER_MONTHLY_SUBMISSIONS', '4'))

    # Read model
    PROFILE_TRANSACTIONS_LIMIT = int(os.environ.get('PROFILE_TRANSACTIONS_LIMIT', '50'))


config = Config()
