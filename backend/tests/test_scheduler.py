"""
Tests for the tiered fair scheduler.
"""
import pytest

from shared.models import SubscriptionTier
from shared.scheduler import build_cycle, load_backlog


def make_items(tier, count, start=0, prefix=None):
    prefix = prefix or tier[0]
    return [
        {
            'itemId': f'{prefix}{i:02d}',
            'ownerId': f'{prefix}-owner',
            'submittedToQueueAt': f'2026-01-01T00:{start + i:02d}:00+00:00',
            'ownerTier': tier,
        }
        for i in range(count)
    ]


class TestBuildCycle:
    """Tests for build_cycle ordering."""

    def test_three_to_one_with_both_tiers_available(self):
        """9 premium + 9 free, 8 slots -> 6 premium and 2 free in P,P,P,F order."""
        premium = make_items(SubscriptionTier.PREMIUM, 9)
        free = make_items(SubscriptionTier.FREE, 9)

        cycle = build_cycle(premium + free, 8, ratio=3)

        tiers = [i['ownerTier'][0] for i in cycle]
        assert tiers == ['p', 'p', 'p', 'f', 'p', 'p', 'p', 'f']
        assert [i['itemId'] for i in cycle if i['ownerTier'] == SubscriptionTier.PREMIUM] == \
            [p['itemId'] for p in premium[:6]]
        assert [i['itemId'] for i in cycle if i['ownerTier'] == SubscriptionTier.FREE] == \
            [f['itemId'] for f in free[:2]]

    def test_depleted_premium_falls_back_to_free(self):
        """1 premium + 5 free, 4 slots -> P, F, F, F."""
        premium = make_items(SubscriptionTier.PREMIUM, 1)
        free = make_items(SubscriptionTier.FREE, 5)

        cycle = build_cycle(free + premium, 4, ratio=3)

        assert [i['itemId'] for i in cycle] == ['p00', 'f00', 'f01', 'f02']

    def test_depleted_free_falls_back_to_premium(self):
        premium = make_items(SubscriptionTier.PREMIUM, 6)

        cycle = build_cycle(premium, 5, ratio=3)

        assert [i['itemId'] for i in cycle] == ['p00', 'p01', 'p02', 'p03', 'p04']

    def test_cycle_never_exceeds_backlog_or_slots(self):
        items = make_items(SubscriptionTier.PREMIUM, 2) + make_items(SubscriptionTier.FREE, 1)

        assert len(build_cycle(items, 10, ratio=3)) == 3
        assert len(build_cycle(items, 2, ratio=3)) == 2

    def test_fifo_within_tier_regardless_of_input_order(self):
        free = make_items(SubscriptionTier.FREE, 4)

        cycle = build_cycle(list(reversed(free)), 4, ratio=3)

        assert [i['itemId'] for i in cycle] == ['f00', 'f01', 'f02', 'f03']

    def test_equal_timestamps_ordered_by_item_id(self):
        items = [
            {'itemId': 'b', 'submittedToQueueAt': '2026-01-01T00:00:00+00:00', 'ownerTier': 'free'},
            {'itemId': 'a', 'submittedToQueueAt': '2026-01-01T00:00:00+00:00', 'ownerTier': 'free'},
        ]

        assert [i['itemId'] for i in build_cycle(items, 2)] == ['a', 'b']

    def test_ratio_zero_alternates_free_first(self):
        items = make_items(SubscriptionTier.PREMIUM, 2) + make_items(SubscriptionTier.FREE, 2)

        cycle = build_cycle(items, 4, ratio=0)

        assert [i['itemId'] for i in cycle] == ['f00', 'f01', 'p00', 'p01']

    def test_no_slots_or_empty_backlog(self):
        assert build_cycle(make_items(SubscriptionTier.FREE, 3), 0) == []
        assert build_cycle([], 5) == []

    def test_negative_ratio_rejected(self):
        with pytest.raises(ValueError):
            build_cycle(make_items(SubscriptionTier.FREE, 1), 1, ratio=-1)

    def test_default_ratio_from_config(self):
        premium = make_items(SubscriptionTier.PREMIUM, 4)
        free = make_items(SubscriptionTier.FREE, 4)

        cycle = build_cycle(premium + free, 4)

        assert [i['ownerTier'] for i in cycle].count(SubscriptionTier.FREE) == 1


class TestLoadBacklog:
    """Tests for tier tagging at read time."""

    def test_tags_owner_tier(self, marketplace):
        backlog = load_backlog(marketplace)

        tiers = {i['itemId']: i['ownerTier'] for i in backlog}
        assert tiers == {
            'item-p1': SubscriptionTier.PREMIUM,
            'item-p2': SubscriptionTier.PREMIUM,
            'item-f1': SubscriptionTier.FREE,
            'item-f2': SubscriptionTier.FREE,
        }
        assert backlog[0]['owner']['userId'] == 'prem1'

    def test_missing_owner_is_free_tier(self, ledger):
        ledger.add_item('orphan', 'ghost')

        backlog = load_backlog(ledger)

        assert backlog[0]['ownerTier'] == SubscriptionTier.FREE
        assert backlog[0]['owner'] == {}

    def test_empty_queue(self, ledger):
        assert load_backlog(ledger) == []
        assert 'get_users' not in ledger.calls
