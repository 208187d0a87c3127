"""
tests/test_referral_service.py — Referral Linking & One-Time Crediting
=======================================================================
Covers referral validation (invalid, self, repeat), linking at registration,
idempotent compare-and-set crediting, stats and shareable links.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from clanquest.constants import REFERRAL_CAMPAIGN_ID
from clanquest.database.models import Referral, RewardHistory, User
from clanquest.errors import (
    AlreadyReferred,
    InvalidReferralCode,
    NotFound,
    SelfReferral,
)
from clanquest.services import referral_service, user_service


def _rewards(engine, user_id: int) -> list[RewardHistory]:
    with Session(engine) as session:
        return list(session.scalars(
            select(RewardHistory).where(RewardHistory.user_id == user_id)
        ).all())


def _referral(engine, referred_user_id: int) -> Referral | None:
    with Session(engine) as session:
        return session.scalar(
            select(Referral).where(Referral.referred_user_id == referred_user_id)
        )


class TestCreateReferral:

    def test_links_referred_user(self, db_engine, make_user, now):
        alice = make_user("alice")
        bob = make_user("bob")

        referral = referral_service.create_referral(
            db_engine, referral_code=alice.referral_code, referred_user_id=bob.id, now=now
        )

        assert referral.referrer_user_id == alice.id
        assert referral.reward_given is False
        assert referral.referral_code == alice.referral_code

    def test_unknown_code(self, db_engine, make_user):
        bob = make_user("bob")
        with pytest.raises(InvalidReferralCode):
            referral_service.create_referral(db_engine, referral_code="NOPE000000", referred_user_id=bob.id)

    def test_deactivated_referrer_code_is_invalid(self, db_engine, make_user):
        alice = make_user("alice")
        bob = make_user("bob")
        user_service.deactivate_user(db_engine, alice.id)
        with pytest.raises(InvalidReferralCode):
            referral_service.create_referral(
                db_engine, referral_code=alice.referral_code, referred_user_id=bob.id
            )

    def test_self_referral(self, db_engine, make_user):
        alice = make_user("alice")
        with pytest.raises(SelfReferral):
            referral_service.create_referral(
                db_engine, referral_code=alice.referral_code, referred_user_id=alice.id
            )
        assert _referral(db_engine, alice.id) is None

    def test_second_referral_rejected(self, db_engine, make_user):
        alice = make_user("alice")
        carol = make_user("carol")
        bob = make_user("bob")
        referral_service.create_referral(db_engine, referral_code=alice.referral_code, referred_user_id=bob.id)

        with pytest.raises(AlreadyReferred):
            referral_service.create_referral(
                db_engine, referral_code=carol.referral_code, referred_user_id=bob.id
            )
        assert _referral(db_engine, bob.id).referrer_user_id == alice.id

    def test_unknown_referred_user(self, db_engine, make_user):
        alice = make_user("alice")
        with pytest.raises(NotFound):
            referral_service.create_referral(db_engine, referral_code=alice.referral_code, referred_user_id=999)


class TestRegistrationWithCode:

    def test_registration_links_referrer(self, db_engine, make_user):
        alice = make_user("alice")
        registration = user_service.register_user(
            db_engine, display_name="bob", referral_code=alice.referral_code
        )
        assert registration.referral is not None
        assert registration.referral.referrer_user_id == alice.id

    def test_invalid_code_aborts_registration(self, db_engine):
        with pytest.raises(InvalidReferralCode):
            user_service.register_user(db_engine, display_name="bob", referral_code="bogus")
        with Session(db_engine) as session:
            assert session.scalar(select(func.count()).select_from(User)) == 0


class TestCreditReferral:

    @pytest.fixture
    def pair(self, db_engine, make_user):
        alice = make_user("alice")
        bob = make_user("bob", referral_code=alice.referral_code)
        return alice, bob

    def test_credits_referrer_once(self, db_engine, pair, now):
        alice, bob = pair

        first = referral_service.credit_referral_if_pending(
            db_engine, referred_user_id=bob.id, action_id="post-1", now=now
        )
        second = referral_service.credit_referral_if_pending(
            db_engine, referred_user_id=bob.id, action_id="post-2", now=now
        )

        assert first is True
        assert second is False
        rewards = _rewards(db_engine, alice.id)
        assert len(rewards) == 1
        assert rewards[0].amount == 100
        assert rewards[0].campaign_ref == REFERRAL_CAMPAIGN_ID
        referral = _referral(db_engine, bob.id)
        assert referral.reward_given is True
        assert referral.action_id == "post-1"
        assert referral.rewarded_at is not None

    def test_referred_user_gets_nothing(self, db_engine, pair):
        _, bob = pair
        referral_service.credit_referral_if_pending(db_engine, referred_user_id=bob.id)
        assert _rewards(db_engine, bob.id) == []

    def test_no_referral_is_a_noop(self, db_engine, make_user):
        loner = make_user("loner")
        assert referral_service.credit_referral_if_pending(db_engine, referred_user_id=loner.id) is False
        assert _rewards(db_engine, loner.id) == []

    def test_custom_reward_amount(self, db_engine, pair):
        alice, bob = pair
        referral_service.credit_referral_if_pending(db_engine, referred_user_id=bob.id, reward_points=250)
        assert _rewards(db_engine, alice.id)[0].amount == 250

    def test_lost_compare_and_set_writes_no_reward(self, db_engine, pair, monkeypatch):
        """A concurrent trigger that flips the flag first leaves this call a no-op."""
        alice, bob = pair
        original_execute = Session.execute

        def _racing_execute(self, statement, *args, **kwargs):
            if getattr(statement, "is_dml", False):
                result = MagicMock()
                result.rowcount = 0
                return result
            return original_execute(self, statement, *args, **kwargs)

        monkeypatch.setattr(Session, "execute", _racing_execute)
        credited = referral_service.credit_referral_if_pending(db_engine, referred_user_id=bob.id)
        monkeypatch.undo()

        assert credited is False
        assert _rewards(db_engine, alice.id) == []


class TestStatsAndCode:

    def test_stats(self, db_engine, make_user):
        alice = make_user("alice")
        bob = make_user("bob", referral_code=alice.referral_code)
        make_user("carol", referral_code=alice.referral_code)
        referral_service.credit_referral_if_pending(db_engine, referred_user_id=bob.id)

        stats = referral_service.get_referral_stats(db_engine, alice.id)

        assert stats.total_referrals == 2
        assert stats.successful_referrals == 1
        assert stats.pending_referrals == 1
        assert stats.total_rewards == 100
        assert stats.pending_rewards == 100
        assert len(stats.referrals) == 2

    def test_stats_total_follows_ledger_not_current_payout(self, db_engine, make_user):
        alice = make_user("alice")
        bob = make_user("bob", referral_code=alice.referral_code)
        referral_service.credit_referral_if_pending(
            db_engine, referred_user_id=bob.id, reward_points=250
        )

        stats = referral_service.get_referral_stats(db_engine, alice.id, reward_points=100)

        assert stats.total_rewards == 250
        assert stats.pending_rewards == 0

    def test_stats_for_user_without_referrals(self, db_engine, make_user):
        stats = referral_service.get_referral_stats(db_engine, make_user("solo").id)
        assert stats.total_referrals == 0
        assert stats.referrals == []

    def test_referral_code_link(self, db_engine, make_user):
        alice = make_user("alice")
        code = referral_service.get_referral_code(db_engine, alice.id, "https://cq.test/")
        assert code.referral_code == alice.referral_code
        assert code.referral_link == f"https://cq.test/referral/{alice.referral_code}"

    def test_referral_code_unknown_user(self, db_engine):
        with pytest.raises(NotFound):
            referral_service.get_referral_code(db_engine, 404, "https://cq.test")
