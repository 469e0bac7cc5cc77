"""
Tests for submitting draft items to the review queue.
"""
from datetime import datetime, timezone

import pytest

from shared.errors import ConflictError, NotFoundError, ValidationError
from shared.models import ItemStatus, TransactionType
from shared.queue_submission import monthly_exchange_update, submit_to_queue

NOW = datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def owner(ledger):
    ledger.add_user('owner', creditBalance=2, hasCompletedQualification=False)
    ledger.add_item('draft-1', 'owner', status=ItemStatus.DRAFT)
    return ledger.users['owner']


class TestMonthlyExchangeUpdate:

    def test_premium_is_unlimited(self):
        premium = {'userId': 'p', 'subscriptionStatus': 'premium', 'exchangesThisMonth': 99, 'exchangesMonth': '2026-03'}

        assert monthly_exchange_update(premium, NOW) is None

    def test_first_submission_of_month(self):
        assert monthly_exchange_update({'userId': 'f'}, NOW) == {'month': '2026-03', 'count': 1, 'previous': None}

    def test_counter_resets_in_new_month(self):
        user = {'userId': 'f', 'exchangesThisMonth': 4, 'exchangesMonth': '2026-02'}

        assert monthly_exchange_update(user, NOW) == {'month': '2026-03', 'count': 1, 'previous': 4}

    def test_limit_reached(self):
        user = {'userId': 'f', 'exchangesThisMonth': 4, 'exchangesMonth': '2026-03'}

        with pytest.raises(ValidationError, match='monthly submission limit'):
            monthly_exchange_update(user, NOW)


class TestSubmitToQueue:

    def test_queues_draft_and_charges_one_credit(self, ledger, owner):
        item = submit_to_queue(ledger, 'owner', 'draft-1', now=NOW)

        assert item['status'] == ItemStatus.QUEUED
        assert ledger.items['draft-1']['status'] == ItemStatus.QUEUED
        assert ledger.items['draft-1']['submittedToQueueAt'] == NOW.isoformat()
        assert ledger.users['owner']['creditBalance'] == 1
        assert ledger.users['owner']['exchangesThisMonth'] == 1

        [transaction] = ledger.transactions
        assert transaction['amount'] == -1
        assert transaction['type'] == TransactionType.SPENT
        assert transaction['referenceId'] == 'draft-1'

    def test_queued_item_enters_backlog(self, ledger, owner):
        submit_to_queue(ledger, 'owner', 'draft-1', now=NOW)

        assert [i['itemId'] for i in ledger.queued_items()] == ['draft-1']

    def test_not_enough_credits(self, ledger, owner):
        owner['creditBalance'] = 0
        before = ledger.snapshot()

        with pytest.raises(ValidationError):
            submit_to_queue(ledger, 'owner', 'draft-1', now=NOW)

        assert ledger.snapshot() == before

    def test_other_owners_item(self, ledger, owner):
        ledger.add_user('intruder', creditBalance=5)

        with pytest.raises(NotFoundError):
            submit_to_queue(ledger, 'intruder', 'draft-1', now=NOW)

    def test_already_queued(self, ledger, owner):
        ledger.items['draft-1']['status'] = ItemStatus.QUEUED

        with pytest.raises(ConflictError):
            submit_to_queue(ledger, 'owner', 'draft-1', now=NOW)

    def test_free_tier_monthly_limit(self, ledger, owner):
        owner.update({'creditBalance': 10, 'exchangesThisMonth': 4, 'exchangesMonth': '2026-03'})

        with pytest.raises(ValidationError):
            submit_to_queue(ledger, 'owner', 'draft-1', now=NOW)

        assert ledger.items['draft-1']['status'] == ItemStatus.DRAFT

    def test_premium_owner_not_counted(self, ledger, owner):
        owner['subscriptionStatus'] = 'premium'

        submit_to_queue(ledger, 'owner', 'draft-1', now=NOW)

        assert 'exchangesThisMonth' not in ledger.users['owner']
