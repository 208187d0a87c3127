"""
tests/test_user_service.py — Registration, Lookup & Reward History
===================================================================
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from clanquest.errors import Conflict, Internal, NotFound
from clanquest.services import campaign_service, leaderboard_service, referral_service, user_service


class TestRegisterUser:

    def test_assigns_referral_code(self, db_engine):
        user = user_service.register_user(db_engine, display_name="ann").user
        assert user.id is not None
        assert len(user.referral_code) == 10
        assert user.referral_code.isalnum()
        assert user.is_active is True
        assert user.active_clan_id is None

    def test_code_length_configurable(self, db_engine):
        user = user_service.register_user(db_engine, display_name="ann", code_length=16).user
        assert len(user.referral_code) == 16

    def test_codes_are_unique(self, db_engine, make_user):
        codes = {make_user(f"user{i}").referral_code for i in range(20)}
        assert len(codes) == 20

    def test_duplicate_display_name(self, db_engine, make_user):
        make_user("ann")
        with pytest.raises(Conflict):
            user_service.register_user(db_engine, display_name="ann")

    def test_code_allocation_gives_up(self, db_engine, make_user):
        taken = make_user("ann").referral_code
        with patch("clanquest.services.user_service.generate_referral_code", return_value=taken):
            with pytest.raises(Internal):
                user_service.register_user(db_engine, display_name="ben")

    def test_admin_flag(self, db_engine):
        user = user_service.register_user(db_engine, display_name="root", is_admin=True).user
        assert user.is_admin is True


class TestLookup:

    def test_get_user(self, db_engine, make_user):
        ann = make_user("ann")
        assert user_service.get_user(db_engine, ann.id).display_name == "ann"

    def test_get_missing_user(self, db_engine):
        with pytest.raises(NotFound):
            user_service.get_user(db_engine, 1)

    def test_deactivate(self, db_engine, make_user):
        ann = make_user("ann")
        user_service.deactivate_user(db_engine, ann.id)
        assert user_service.get_user(db_engine, ann.id).is_active is False


class TestUpdateUser:

    def test_rename(self, db_engine, make_user):
        ann = make_user("ann")
        user_service.update_user(db_engine, ann.id, display_name="annie")
        assert user_service.get_user(db_engine, ann.id).display_name == "annie"

    def test_rename_to_taken_name(self, db_engine, make_user):
        ann = make_user("ann")
        make_user("ben")
        with pytest.raises(Conflict):
            user_service.update_user(db_engine, ann.id, display_name="ben")
        assert user_service.get_user(db_engine, ann.id).display_name == "ann"

    def test_rename_to_same_name_is_noop(self, db_engine, make_user):
        ann = make_user("ann")
        assert user_service.update_user(db_engine, ann.id, display_name="ann").display_name == "ann"

    def test_rename_missing_user(self, db_engine):
        with pytest.raises(NotFound):
            user_service.update_user(db_engine, 1, display_name="ghost")

    def test_leaderboard_entry_keeps_old_name(self, db_engine, make_user, make_campaign, now):
        campaign = make_campaign()
        ann = make_user("ann")
        campaign_service.join_campaign(db_engine, campaign_id=campaign.id, user_id=ann.id, now=now)

        user_service.update_user(db_engine, ann.id, display_name="annie")

        board_id = leaderboard_service.resolve_leaderboard_id(db_engine, campaign_id=campaign.id)
        view = leaderboard_service.get_leaderboard(db_engine, leaderboard_id=board_id)
        assert [e.user_name for e in view.entries] == ["ann"]


class TestRewardHistory:

    def test_empty(self, db_engine, make_user):
        rows, total = user_service.get_reward_history(db_engine, make_user("ann").id)
        assert rows == []
        assert total == 0.0

    def test_referral_rewards_appear(self, db_engine, make_user):
        alice = make_user("alice")
        for name in ("bob", "carol"):
            friend = make_user(name, referral_code=alice.referral_code)
            referral_service.credit_referral_if_pending(db_engine, referred_user_id=friend.id)

        rows, total = user_service.get_reward_history(db_engine, alice.id)
        assert len(rows) == 2
        assert total == 200.0

    def test_unknown_user(self, db_engine):
        with pytest.raises(NotFound):
            user_service.get_reward_history(db_engine, 999)
