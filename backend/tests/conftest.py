"""
Shared fixtures: an in-memory ledger with the same conditional semantics as
the DynamoDB LedgerStore, plus record builders.
"""
import copy
import os
import sys
from collections import Counter

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from shared.errors import ConflictError, NotFoundError  # noqa: E402
from shared.models import AssignmentStatus, BatchStatus, ItemStatus  # noqa: E402


class FakeLedger:
    """
    Dict-backed stand-in for LedgerStore.

    Multi-record writes are validated before anything is applied, so a
    failed call leaves every table untouched. Use fail(method, error) to
    make the next call(s) of a method raise.
    """

    def __init__(self):
        self.users = {}
        self.items = {}
        self.batches = {}
        self.assignments = {}
        self.relationships = {}
        self.transactions = []
        self.counter = 0
        self.calls = []
        self._failures = {}

    # Test helpers

    def fail(self, method, error, times=1):
        self._failures[method] = [error, times]

    def _call(self, method):
        self.calls.append(method)
        failure = self._failures.get(method)
        if failure:
            error, times = failure
            if times is not None:
                failure[1] -= 1
                if failure[1] <= 0:
                    del self._failures[method]
            raise error

    def add_user(self, user_id, **fields):
        user = {
            'userId': user_id,
            'email': f'{user_id}@example.com',
            'name': user_id.title(),
            'creditBalance': 0,
            'hasCompletedQualification': True,
            'subscriptionStatus': 'free',
        }
        user.update(fields)
        self.users[user_id] = user
        return user

    def add_item(self, item_id, owner_id, status=ItemStatus.QUEUED, queued_at='2026-01-01T00:00:00+00:00', **fields):
        item = {
            'itemId': item_id,
            'ownerId': owner_id,
            'name': f'Item {item_id}',
            'status': status,
            'createdAt': '2025-12-01T00:00:00+00:00',
        }
        if status != ItemStatus.DRAFT:
            item['submittedToQueueAt'] = queued_at
        item.update(fields)
        self.items[item_id] = item
        return item

    def add_relationship(self, reviewer_id, owner_id, item_id, created_at='2025-12-15T00:00:00+00:00'):
        self.relationships[(reviewer_id, f'{owner_id}#{item_id}')] = {
            'reviewerId': reviewer_id,
            'relationshipKey': f'{owner_id}#{item_id}',
            'reviewedOwnerId': owner_id,
            'itemId': item_id,
            'createdAt': created_at,
        }

    def snapshot(self):
        return copy.deepcopy((
            self.users, self.items, self.batches, self.assignments,
            self.relationships, self.transactions, self.counter,
        ))

    # Users

    def get_user(self, user_id):
        self._call('get_user')
        return copy.deepcopy(self.users.get(user_id))

    def get_users(self, user_ids):
        self._call('get_users')
        return {i: copy.deepcopy(self.users[i]) for i in set(user_ids) if i in self.users}

    def qualified_reviewer_ids(self):
        self._call('qualified_reviewer_ids')
        return {u['userId'] for u in self.users.values() if u.get('hasCompletedQualification') is True}

    # Items

    def get_item(self, item_id):
        self._call('get_item')
        return copy.deepcopy(self.items.get(item_id))

    def queued_items(self):
        self._call('queued_items')
        queued = [copy.deepcopy(i) for i in self.items.values() if i['status'] == ItemStatus.QUEUED]
        return sorted(queued, key=lambda i: (i.get('submittedToQueueAt') or '', i['itemId']))

    def items_for_owner(self, owner_id):
        self._call('items_for_owner')
        return [copy.deepcopy(i) for i in self.items.values() if i['ownerId'] == owner_id]

    def mark_item_assigned(self, item_id, assignment_id, now_iso):
        self._call('mark_item_assigned')
        item = self.items.get(item_id)
        if not item or item['status'] != ItemStatus.QUEUED:
            raise ConflictError('mark_item_assigned: condition check failed')
        item.update({'status': ItemStatus.ASSIGNED, 'assignedAt': now_iso, 'activeAssignmentId': assignment_id})

    def enqueue_item(self, item, owner, transaction, now_iso, exchange=None):
        self._call('enqueue_item')
        stored = self.items.get(item['itemId'])
        user = self.users.get(owner['userId'])
        if not stored or stored['status'] != ItemStatus.DRAFT or stored['ownerId'] != owner['userId']:
            raise ConflictError('enqueue_item: transaction cancelled')
        if not user or user.get('creditBalance', 0) < 1:
            raise ConflictError('enqueue_item: transaction cancelled')
        if exchange and user.get('exchangesThisMonth') != exchange.get('previous'):
            raise ConflictError('enqueue_item: transaction cancelled')

        stored.update({'status': ItemStatus.QUEUED, 'submittedToQueueAt': now_iso})
        user['creditBalance'] -= 1
        user['updatedAt'] = now_iso
        if exchange:
            user['exchangesThisMonth'] = exchange['count']
            user['exchangesMonth'] = exchange['month']
        self.transactions.append(copy.deepcopy(transaction))

    # Batches

    def create_batch(self, batch):
        self._call('create_batch')
        if batch['batchId'] in self.batches:
            raise ConflictError('create_batch: condition check failed')
        self.batches[batch['batchId']] = copy.deepcopy(batch)

    def delete_batch(self, batch_id):
        self._call('delete_batch')
        self.batches.pop(batch_id, None)

    def complete_batch(self, batch_id, completed_at, credits_earned):
        self._call('complete_batch')
        batch = self.batches.get(batch_id)
        if not batch or batch['status'] != BatchStatus.ACTIVE:
            return False
        batch.update({'status': BatchStatus.COMPLETED, 'completedAt': completed_at, 'creditsEarned': credits_earned})
        return True

    # Assignments

    def next_assignment_number(self):
        self._call('next_assignment_number')
        self.counter += 1
        return self.counter

    def active_assignment_counts(self):
        self._call('active_assignment_counts')
        return dict(Counter(
            a['reviewerId'] for a in self.assignments.values() if a['status'] == AssignmentStatus.ASSIGNED
        ))

    def create_assignment(self, assignment, max_active):
        self._call('create_assignment')
        user = self.users.get(assignment['reviewerId'])
        if assignment['assignmentId'] in self.assignments or not user:
            raise ConflictError('create_assignment: transaction cancelled')
        if user.get('activeAssignmentCount', 0) >= max_active:
            raise ConflictError('create_assignment: transaction cancelled')
        self.assignments[assignment['assignmentId']] = copy.deepcopy(assignment)
        user['activeAssignmentCount'] = user.get('activeAssignmentCount', 0) + 1

    def delete_assignment(self, assignment):
        self._call('delete_assignment')
        stored = self.assignments.get(assignment['assignmentId'])
        if not stored or stored['status'] != AssignmentStatus.ASSIGNED:
            raise ConflictError('delete_assignment: transaction cancelled')
        del self.assignments[assignment['assignmentId']]
        user = self.users[assignment['reviewerId']]
        user['activeAssignmentCount'] = user.get('activeAssignmentCount', 0) - 1

    def get_assignment(self, assignment_id):
        self._call('get_assignment')
        return copy.deepcopy(self.assignments.get(assignment_id))

    def assignments_for_batch(self, batch_id):
        self._call('assignments_for_batch')
        return [copy.deepcopy(a) for a in self.assignments.values() if a['batchId'] == batch_id]

    def assignments_for_reviewer(self, reviewer_id):
        self._call('assignments_for_reviewer')
        return [copy.deepcopy(a) for a in self.assignments.values() if a['reviewerId'] == reviewer_id]

    def settle_assignment(self, assignment, owner_id, review, transaction, now_iso):
        self._call('settle_assignment')
        stored = self.assignments.get(assignment['assignmentId'])
        if not stored or stored['status'] != AssignmentStatus.ASSIGNED:
            raise NotFoundError('Assignment not found or already processed')
        item = self.items.get(assignment['itemId'])
        if not item or item['status'] != ItemStatus.ASSIGNED:
            raise ConflictError('settle_assignment: transaction cancelled')
        if any(t['transactionId'] == transaction['transactionId'] for t in self.transactions):
            raise ConflictError('settle_assignment: transaction cancelled')

        stored.update(review)
        stored['status'] = AssignmentStatus.APPROVED
        item.update({'status': ItemStatus.REVIEWED, 'reviewedAt': now_iso})
        item.pop('activeAssignmentId', None)
        self.transactions.append(copy.deepcopy(transaction))
        reviewer = self.users[assignment['reviewerId']]
        reviewer['creditBalance'] = reviewer.get('creditBalance', 0) + transaction['amount']
        reviewer['activeAssignmentCount'] = reviewer.get('activeAssignmentCount', 0) - 1
        reviewer['updatedAt'] = now_iso
        key = (assignment['reviewerId'], f'{owner_id}#{assignment["itemId"]}')
        if key not in self.relationships:
            self.add_relationship(assignment['reviewerId'], owner_id, assignment['itemId'], now_iso)

    # Relationships

    def reviewers_of_owner(self, owner_id):
        self._call('reviewers_of_owner')
        return {r['reviewerId'] for r in self.relationships.values() if r['reviewedOwnerId'] == owner_id}

    def relationships_for_reviewer(self, reviewer_id):
        self._call('relationships_for_reviewer')
        return [copy.deepcopy(r) for r in self.relationships.values() if r['reviewerId'] == reviewer_id]

    # Credit transactions

    def transactions_for_user(self, user_id, limit):
        self._call('transactions_for_user')
        mine = [copy.deepcopy(t) for t in self.transactions if t['userId'] == user_id]
        return sorted(mine, key=lambda t: t['createdAt'], reverse=True)[:limit]

    # Admin

    def update_user_profile(self, user_id, fields, now_iso, expected_balance=None, transaction=None):
        self._call('update_user_profile')
        user = self.users.get(user_id)
        if not user:
            raise ConflictError('update_user_profile: transaction cancelled')
        if 'creditBalance' in fields and user.get('creditBalance') != expected_balance:
            raise ConflictError('update_user_profile: transaction cancelled')
        user.update(fields)
        user['updatedAt'] = now_iso
        if transaction:
            self.transactions.append(copy.deepcopy(transaction))

    def all_users(self):
        self._call('all_users')
        return [copy.deepcopy(u) for u in self.users.values()]

    def all_items(self):
        self._call('all_items')
        return [copy.deepcopy(i) for i in self.items.values()]

    def all_assignments(self):
        self._call('all_assignments')
        return [copy.deepcopy(a) for a in self.assignments.values()]

    def all_transactions(self):
        self._call('all_transactions')
        return copy.deepcopy(self.transactions)


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def marketplace(ledger):
    """
    Two premium and two free owners (not reviewers themselves), three
    qualified reviewers and one unqualified user. Every owner has one
    queued item.
    """
    for owner in ('prem1', 'prem2'):
        ledger.add_user(owner, subscriptionStatus='premium', creditBalance=5, hasCompletedQualification=False)
    for owner in ('free1', 'free2'):
        ledger.add_user(owner, creditBalance=2, hasCompletedQualification=False)
    for reviewer in ('rev1', 'rev2', 'rev3'):
        ledger.add_user(reviewer)
    ledger.add_user('newbie', hasCompletedQualification=False)

    ledger.add_item('item-p1', 'prem1', queued_at='2026-01-01T00:00:01+00:00')
    ledger.add_item('item-f1', 'free1', queued_at='2026-01-01T00:00:02+00:00')
    ledger.add_item('item-p2', 'prem2', queued_at='2026-01-01T00:00:03+00:00')
    ledger.add_item('item-f2', 'free2', queued_at='2026-01-01T00:00:04+00:00')
    return ledger
