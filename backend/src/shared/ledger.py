"""
Ledger Store: DynamoDB access for users, items, batches, assignments,
relationships, credit transactions and the assignment number sequence.

Every invariant that spans concurrent invocations is enforced here with
conditional writes and TransactWriteItems, never with in-process state.
All boto3/botocore failures leave this module as typed errors:
ConditionalCheckFailed -> ConflictError, everything else -> StoreFailure.
"""
from collections import Counter
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional, Set

import boto3
from boto3.dynamodb.conditions import Attr, Key
from boto3.dynamodb.types import TypeSerializer
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .config import config
from .errors import ConflictError, NotFoundError, StoreFailure
from .logging import get_logger
from .models import (
    ASSIGNMENT_NUMBER_COUNTER,
    AssignmentStatus,
    BatchStatus,
    ItemStatus,
)

logger = get_logger('ledger')

# DynamoDB caps BatchGetItem at 100 keys per request
BATCH_GET_LIMIT = 100

# Cancellation reasons that mean "try again later" rather than "state changed"
THROTTLING_REASONS = ('ThrottlingError', 'ProvisionedThroughputExceeded', 'RequestLimitExceeded')

_serializer = TypeSerializer()


def relationship_key(owner_id: str, item_id: str) -> str:
    """Sort key of a relationship row: one row per (reviewer, owner, item)."""
    return f"{owner_id}#{item_id}"


class TransactionConflict(ConflictError):
    """A TransactWriteItems call was cancelled; reasons follow TransactItems order."""

    def __init__(self, message: str, reasons: List[str]):
        super().__init__(message)
        self.reasons = reasons

    def failed_at(self, index: int) -> bool:
        return index < len(self.reasons) and self.reasons[index] == 'ConditionalCheckFailed'


def boto_config() -> BotoConfig:
    """Bounded timeouts so a slow store surfaces as a retryable failure, not a hang."""
    return BotoConfig(
        connect_timeout=config.STORE_CONNECT_TIMEOUT,
        read_timeout=config.STORE_READ_TIMEOUT,
        retries={'max_attempts': config.STORE_MAX_ATTEMPTS, 'mode': 'standard'},
    )


def marshal(values: Dict[str, Any]) -> Dict[str, Any]:
    """Serialize a plain dict into DynamoDB wire format, dropping None values."""
    return {k: _serializer.serialize(v) for k, v in values.items() if v is not None}


@contextmanager
def store_call(operation: str):
    """Translate boto3/botocore failures raised inside the block."""
    try:
        yield
    except ClientError as e:
        code = e.response.get('Error', {}).get('Code', '')
        if code == 'ConditionalCheckFailedException':
            raise ConflictError(f"{operation}: condition check failed") from e
        if code == 'TransactionCanceledException':
            reasons = [r.get('Code', 'None') for r in e.response.get('CancellationReasons', [])]
            if any(r in THROTTLING_REASONS for r in reasons):
                raise StoreFailure(f"{operation}: throttled ({reasons})") from e
            raise TransactionConflict(f"{operation}: transaction cancelled ({reasons})", reasons) from e
        logger.error(f"{operation} failed with {code}: {e}")
        raise StoreFailure(f"{operation}: {code or e}") from e
    except BotoCoreError as e:
        logger.error(f"{operation} failed: {e}")
        raise StoreFailure(f"{operation}: {e}") from e


class LedgerStore:
    """DynamoDB-backed ledger. One instance per Lambda container."""

    def __init__(self, resource=None, client=None):
        self.dynamodb = resource or boto3.resource(
            'dynamodb', region_name=config.AWS_REGION, config=boto_config()
        )
        self.client = client or boto3.client(
            'dynamodb', region_name=config.AWS_REGION, config=boto_config()
        )

    def _table(self, name: str):
        return self.dynamodb.Table(name)

    def _query_all(self, table_name: str, **params) -> List[Dict[str, Any]]:
        """Query following LastEvaluatedKey until the result set is exhausted."""
        table = self._table(table_name)
        items = []
        while True:
            response = table.query(**params)
            items.extend(response.get('Items', []))
            last_key = response.get('LastEvaluatedKey')
            if not last_key:
                return items
            params['ExclusiveStartKey'] = last_key

    def _scan_all(self, table_name: str, **params) -> List[Dict[str, Any]]:
        table = self._table(table_name)
        items = []
        while True:
            response = table.scan(**params)
            items.extend(response.get('Items', []))
            last_key = response.get('LastEvaluatedKey')
            if not last_key:
                return items
            params['ExclusiveStartKey'] = last_key

    def _transact(self, operation: str, transact_items: List[Dict[str, Any]]) -> None:
        with store_call(operation):
            self.client.transact_write_items(TransactItems=transact_items)

    # Users

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        with store_call('get_user'):
            response = self._table(config.USERS_TABLE).get_item(
                Key={'userId': user_id}, ConsistentRead=True
            )
        return response.get('Item')

    def get_users(self, user_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        """Fetch several users at once, keyed by userId. Missing users are omitted."""
        ids = sorted(set(user_ids))
        users = {}
        for start in range(0, len(ids), BATCH_GET_LIMIT):
            request = {config.USERS_TABLE: {'Keys': [{'userId': i} for i in ids[start:start + BATCH_GET_LIMIT]]}}
            while request:
                with store_call('get_users'):
                    response = self.dynamodb.batch_get_item(RequestItems=request)
                for user in response.get('Responses', {}).get(config.USERS_TABLE, []):
                    users[user['userId']] = user
                request = response.get('UnprocessedKeys') or None
        return users

    def qualified_reviewer_ids(self) -> Set[str]:
        with store_call('qualified_reviewer_ids'):
            users = self._scan_all(
                config.USERS_TABLE,
                FilterExpression=Attr('hasCompletedQualification').eq(True),
                ProjectionExpression='userId',
            )
        return {u['userId'] for u in users}

    # Items

    def get_item(self, item_id: str) -> Optional[Dict[str, Any]]:
        with store_call('get_item'):
            response = self._table(config.ITEMS_TABLE).get_item(
                Key={'itemId': item_id}, ConsistentRead=True
            )
        return response.get('Item')

    def queued_items(self) -> List[Dict[str, Any]]:
        """All queued items, oldest queue entry first, ties broken by itemId."""
        with store_call('queued_items'):
            items = self._query_all(
                config.ITEMS_TABLE,
                IndexName='StatusIndex',
                KeyConditionExpression=Key('status').eq(ItemStatus.QUEUED),
                ScanIndexForward=True,
            )
        return sorted(items, key=lambda i: (i.get('submittedToQueueAt') or '', i['itemId']))

    def items_for_owner(self, owner_id: str) -> List[Dict[str, Any]]:
        with store_call('items_for_owner'):
            return self._query_all(
                config.ITEMS_TABLE,
                IndexName='OwnerIndex',
                KeyConditionExpression=Key('ownerId').eq(owner_id),
            )

    def mark_item_assigned(self, item_id: str, assignment_id: str, now_iso: str) -> None:
        """queued -> assigned. Raises ConflictError if the item is no longer queued."""
        with store_call('mark_item_assigned'):
            self._table(config.ITEMS_TABLE).update_item(
                Key={'itemId': item_id},
                UpdateExpression='SET #status = :assigned, assignedAt = :ts, activeAssignmentId = :aid',
                ConditionExpression='#status = :queued',
                ExpressionAttributeNames={'#status': 'status'},
                ExpressionAttributeValues={
                    ':assigned': ItemStatus.ASSIGNED,
                    ':queued': ItemStatus.QUEUED,
                    ':ts': now_iso,
                    ':aid': assignment_id,
                },
            )

    def enqueue_item(
        self,
        item: Dict[str, Any],
        owner: Dict[str, Any],
        transaction: Dict[str, Any],
        now_iso: str,
        exchange: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        draft -> queued, paid with one credit.

        exchange carries the free-tier monthly counter update:
        {'month': 'YYYY-MM', 'count': new_count, 'previous': old_count or None}.
        """
        user_update = 'ADD creditBalance :minus_one SET updatedAt = :ts'
        user_condition = 'creditBalance >= :one'
        user_values = {':minus_one': -1, ':one': 1, ':ts': now_iso}
        if exchange:
            user_update += ', exchangesThisMonth = :count, exchangesMonth = :month'
            user_values.update({':count': exchange['count'], ':month': exchange['month']})
            if exchange.get('previous') is None:
                user_condition += ' AND attribute_not_exists(exchangesThisMonth)'
            else:
                user_condition += ' AND exchangesThisMonth = :previous'
                user_values[':previous'] = exchange['previous']

        self._transact('enqueue_item', [
            {
                'Update': {
                    'TableName': config.ITEMS_TABLE,
                    'Key': marshal({'itemId': item['itemId']}),
                    'UpdateExpression': 'SET #status = :queued, submittedToQueueAt = :ts',
                    'ConditionExpression': '#status = :draft AND ownerId = :owner',
                    'ExpressionAttributeNames': {'#status': 'status'},
                    'ExpressionAttributeValues': marshal({
                        ':queued': ItemStatus.QUEUED,
                        ':draft': ItemStatus.DRAFT,
                        ':owner': owner['userId'],
                        ':ts': now_iso,
                    }),
                }
            },
            {
                'Update': {
                    'TableName': config.USERS_TABLE,
                    'Key': marshal({'userId': owner['userId']}),
                    'UpdateExpression': user_update,
                    'ConditionExpression': user_condition,
                    'ExpressionAttributeValues': marshal(user_values),
                }
            },
            {
                'Put': {
                    'TableName': config.TRANSACTIONS_TABLE,
                    'Item': marshal(transaction),
                    'ConditionExpression': 'attribute_not_exists(transactionId)',
                }
            },
        ])

    # Batches

    def create_batch(self, batch: Dict[str, Any]) -> None:
        with store_call('create_batch'):
            self._table(config.BATCHES_TABLE).put_item(
                Item=batch,
                ConditionExpression='attribute_not_exists(batchId)',
            )

    def delete_batch(self, batch_id: str) -> None:
        with store_call('delete_batch'):
            self._table(config.BATCHES_TABLE).delete_item(Key={'batchId': batch_id})

    def complete_batch(self, batch_id: str, completed_at: str, credits_earned: int) -> bool:
        """active -> completed. Returns False if another settlement already completed it."""
        try:
            with store_call('complete_batch'):
                self._table(config.BATCHES_TABLE).update_item(
                    Key={'batchId': batch_id},
                    UpdateExpression='SET #status = :completed, completedAt = :ts, creditsEarned = :credits',
                    ConditionExpression='#status = :active',
                    ExpressionAttributeNames={'#status': 'status'},
                    ExpressionAttributeValues={
                        ':completed': BatchStatus.COMPLETED,
                        ':active': BatchStatus.ACTIVE,
                        ':ts': completed_at,
                        ':credits': credits_earned,
                    },
                )
        except ConflictError:
            return False
        return True

    # Assignments

    def next_assignment_number(self) -> int:
        """Draw the next value of the global assignment number sequence."""
        with store_call('next_assignment_number'):
            response = self._table(config.COUNTERS_TABLE).update_item(
                Key={'counterName': ASSIGNMENT_NUMBER_COUNTER},
                UpdateExpression='ADD currentValue :one',
                ExpressionAttributeValues={':one': 1},
                ReturnValues='UPDATED_NEW',
            )
        return int(response['Attributes']['currentValue'])

    def active_assignment_counts(self) -> Dict[str, int]:
        """reviewerId -> number of assignments currently in status 'assigned'."""
        with store_call('active_assignment_counts'):
            assignments = self._query_all(
                config.ASSIGNMENTS_TABLE,
                IndexName='StatusIndex',
                KeyConditionExpression=Key('status').eq(AssignmentStatus.ASSIGNED),
            )
        return dict(Counter(a['reviewerId'] for a in assignments))

    def create_assignment(self, assignment: Dict[str, Any], max_active: int) -> None:
        """
        Put the assignment and claim one of the reviewer's active slots in one
        transaction. Raises ConflictError when the reviewer is already at max_active.
        """
        self._transact('create_assignment', [
            {
                'Put': {
                    'TableName': config.ASSIGNMENTS_TABLE,
                    'Item': marshal(assignment),
                    'ConditionExpression': 'attribute_not_exists(assignmentId)',
                }
            },
            {
                'Update': {
                    'TableName': config.USERS_TABLE,
                    'Key': marshal({'userId': assignment['reviewerId']}),
                    'UpdateExpression': 'ADD activeAssignmentCount :one',
                    'ConditionExpression': (
                        'attribute_exists(userId) AND '
                        '(attribute_not_exists(activeAssignmentCount) OR activeAssignmentCount < :limit)'
                    ),
                    'ExpressionAttributeValues': marshal({':one': 1, ':limit': max_active}),
                }
            },
        ])

    def delete_assignment(self, assignment: Dict[str, Any]) -> None:
        """Remove an unsettled assignment and release the reviewer slot it held."""
        self._transact('delete_assignment', [
            {
                'Delete': {
                    'TableName': config.ASSIGNMENTS_TABLE,
                    'Key': marshal({'assignmentId': assignment['assignmentId']}),
                    'ConditionExpression': '#status = :assigned',
                    'ExpressionAttributeNames': {'#status': 'status'},
                    'ExpressionAttributeValues': marshal({':assigned': AssignmentStatus.ASSIGNED}),
                }
            },
            {
                'Update': {
                    'TableName': config.USERS_TABLE,
                    'Key': marshal({'userId': assignment['reviewerId']}),
                    'UpdateExpression': 'ADD activeAssignmentCount :minus_one',
                    'ExpressionAttributeValues': marshal({':minus_one': -1}),
                }
            },
        ])

    def get_assignment(self, assignment_id: str) -> Optional[Dict[str, Any]]:
        with store_call('get_assignment'):
            response = self._table(config.ASSIGNMENTS_TABLE).get_item(
                Key={'assignmentId': assignment_id}, ConsistentRead=True
            )
        return response.get('Item')

    def assignments_for_batch(self, batch_id: str) -> List[Dict[str, Any]]:
        with store_call('assignments_for_batch'):
            return self._query_all(
                config.ASSIGNMENTS_TABLE,
                IndexName='BatchIndex',
                KeyConditionExpression=Key('batchId').eq(batch_id),
            )

    def assignments_for_reviewer(self, reviewer_id: str) -> List[Dict[str, Any]]:
        with store_call('assignments_for_reviewer'):
            return self._query_all(
                config.ASSIGNMENTS_TABLE,
                IndexName='ReviewerIndex',
                KeyConditionExpression=Key('reviewerId').eq(reviewer_id),
                ScanIndexForward=False,
            )

    def settle_assignment(
        self,
        assignment: Dict[str, Any],
        owner_id: str,
        review: Dict[str, Any],
        transaction: Dict[str, Any],
        now_iso: str,
    ) -> None:
        """
        Approve an assignment, mark its item reviewed, append the credit entry,
        credit the reviewer and record the reviewer/owner relationship, all or
        nothing. The reviewer slot is never released without the relationship.

        The relationship is an upsert, so an existing row never cancels the
        transaction.

        Raises NotFoundError if the assignment is no longer 'assigned'
        (a concurrent duplicate submission won the race).
        """
        try:
            self._transact('settle_assignment', [
                {
                    'Update': {
                        'TableName': config.ASSIGNMENTS_TABLE,
                        'Key': marshal({'assignmentId': assignment['assignmentId']}),
                        'UpdateExpression': (
                            'SET reviewText = :text, rating = :rating, proof = :proof, '
                            '#status = :approved, submittedAt = :submitted'
                        ),
                        'ConditionExpression': '#status = :assigned',
                        'ExpressionAttributeNames': {'#status': 'status'},
                        'ExpressionAttributeValues': marshal({
                            ':text': review['reviewText'],
                            ':rating': review['rating'],
                            ':proof': review['proof'],
                            ':submitted': review['submittedAt'],
                            ':approved': AssignmentStatus.APPROVED,
                            ':assigned': AssignmentStatus.ASSIGNED,
                        }),
                    }
                },
                {
                    'Update': {
                        'TableName': config.ITEMS_TABLE,
                        'Key': marshal({'itemId': assignment['itemId']}),
                        'UpdateExpression': 'SET #status = :reviewed, reviewedAt = :ts REMOVE activeAssignmentId',
                        'ConditionExpression': '#status = :assigned',
                        'ExpressionAttributeNames': {'#status': 'status'},
                        'ExpressionAttributeValues': marshal({
                            ':reviewed': ItemStatus.REVIEWED,
                            ':assigned': ItemStatus.ASSIGNED,
                            ':ts': now_iso,
                        }),
                    }
                },
                {
                    'Put': {
                        'TableName': config.TRANSACTIONS_TABLE,
                        'Item': marshal(transaction),
                        'ConditionExpression': 'attribute_not_exists(transactionId)',
                    }
                },
                {
                    'Update': {
                        'TableName': config.USERS_TABLE,
                        'Key': marshal({'userId': assignment['reviewerId']}),
                        'UpdateExpression': (
                            'ADD creditBalance :amount, activeAssignmentCount :minus_one SET updatedAt = :ts'
                        ),
                        'ExpressionAttributeValues': marshal({
                            ':amount': transaction['amount'],
                            ':minus_one': -1,
                            ':ts': now_iso,
                        }),
                    }
                },
                {
                    'Update': {
                        'TableName': config.RELATIONSHIPS_TABLE,
                        'Key': marshal({
                            'reviewerId': assignment['reviewerId'],
                            'relationshipKey': relationship_key(owner_id, assignment['itemId']),
                        }),
                        'UpdateExpression': (
                            'SET reviewedOwnerId = :owner, itemId = :item, '
                            'createdAt = if_not_exists(createdAt, :ts)'
                        ),
                        'ExpressionAttributeValues': marshal({
                            ':owner': owner_id,
                            ':item': assignment['itemId'],
                            ':ts': now_iso,
                        }),
                    }
                },
            ])
        except TransactionConflict as e:
            if e.failed_at(0):
                raise NotFoundError('Assignment not found or already processed') from e
            raise

    # Relationships

    def reviewers_of_owner(self, owner_id: str) -> Set[str]:
        # OwnerIndex reads are eventually consistent. The relationship row commits
        # in the same transaction that frees the reviewer's slot (settle_assignment).
        with store_call('reviewers_of_owner'):
            relationships = self._query_all(
                config.RELATIONSHIPS_TABLE,
                IndexName='OwnerIndex',
                KeyConditionExpression=Key('reviewedOwnerId').eq(owner_id),
            )
        return {r['reviewerId'] for r in relationships}

    def relationships_for_reviewer(self, reviewer_id: str) -> List[Dict[str, Any]]:
        with store_call('relationships_for_reviewer'):
            return self._query_all(
                config.RELATIONSHIPS_TABLE,
                KeyConditionExpression=Key('reviewerId').eq(reviewer_id),
            )

    # Credit transactions

    def transactions_for_user(self, user_id: str, limit: int) -> List[Dict[str, Any]]:
        """Most recent credit transactions first."""
        with store_call('transactions_for_user'):
            response = self._table(config.TRANSACTIONS_TABLE).query(
                IndexName='UserIndex',
                KeyConditionExpression=Key('userId').eq(user_id),
                ScanIndexForward=False,
                Limit=limit,
            )
        return response.get('Items', [])

    # Admin

    def update_user_profile(
        self,
        user_id: str,
        fields: Dict[str, Any],
        now_iso: str,
        expected_balance: Optional[int] = None,
        transaction: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Overwrite admin-managed user fields. A balance change and its ledger
        entry commit together; the balance is conditioned on expected_balance
        (None means the attribute was absent when read).
        """
        names = {f'#{k}': k for k in fields}
        values = {f':{k}': v for k, v in fields.items()}
        values[':ts'] = now_iso
        assignments = ', '.join(f'#{k} = :{k}' for k in fields)
        condition = 'attribute_exists(userId)'
        if 'creditBalance' in fields:
            if expected_balance is None:
                condition += ' AND attribute_not_exists(creditBalance)'
            else:
                condition += ' AND #creditBalance = :expected'
                values[':expected'] = expected_balance

        transact_items = [
            {
                'Update': {
                    'TableName': config.USERS_TABLE,
                    'Key': marshal({'userId': user_id}),
                    'UpdateExpression': f'SET {assignments}, updatedAt = :ts',
                    'ConditionExpression': condition,
                    'ExpressionAttributeNames': names,
                    'ExpressionAttributeValues': marshal(values),
                }
            },
        ]
        if transaction:
            transact_items.append({
                'Put': {
                    'TableName': config.TRANSACTIONS_TABLE,
                    'Item': marshal(transaction),
                    'ConditionExpression': 'attribute_not_exists(transactionId)',
                }
            })
        self._transact('update_user_profile', transact_items)

    def all_users(self) -> List[Dict[str, Any]]:
        with store_call('all_users'):
            return self._scan_all(config.USERS_TABLE)

    def all_items(self) -> List[Dict[str, Any]]:
        with store_call('all_items'):
            return self._scan_all(config.ITEMS_TABLE)

    def all_assignments(self) -> List[Dict[str, Any]]:
        with store_call('all_assignments'):
            return self._scan_all(config.ASSIGNMENTS_TABLE)

    def all_transactions(self) -> List[Dict[str, Any]]:
        with store_call('all_transactions'):
            return self._scan_all(config.TRANSACTIONS_TABLE)
