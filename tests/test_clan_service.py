"""
tests/test_clan_service.py — Clan CRUD & Join/Switch State Machine
===================================================================
Covers first joins, the 30-day switch cooldown, what a switch does to the old
membership and entry, re-joining a former clan, soft deletion, and atomic
rollback of a failed switch.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from clanquest.database.models import ClanParticipant, LeaderboardEntry, User
from clanquest.engine.eligibility import as_utc
from clanquest.errors import AlreadyJoined, CooldownNotElapsed, InactiveUser, NotFound
from clanquest.services import clan_service, leaderboard_service, user_service


def _user(engine, user_id: int) -> User:
    with Session(engine) as session:
        return session.get(User, user_id)


def _memberships(engine, user_id: int) -> dict[int, bool]:
    with Session(engine) as session:
        rows = session.scalars(
            select(ClanParticipant).where(ClanParticipant.user_id == user_id)
        ).all()
        return {r.clan_id: r.active for r in rows}


def _entry_points(engine, clan, user_id: int) -> float | None:
    with Session(engine) as session:
        return session.scalar(
            select(LeaderboardEntry.points).where(
                LeaderboardEntry.leaderboard_id == clan.leaderboard.id,
                LeaderboardEntry.user_id == user_id,
            )
        )


class TestClanCrud:

    def test_create_with_leaderboard(self, make_clan):
        clan = make_clan("Owls", description="night shift")
        assert clan.leaderboard.clan_id == clan.id
        assert clan.leaderboard.campaign_id is None
        assert clan.member_count == 0

    def test_update(self, db_engine, make_clan):
        clan = make_clan()
        updated = clan_service.update_clan(db_engine, clan.id, title="Larks", clan_score=12.5)
        assert updated.title == "Larks"
        assert updated.clan_score == 12.5

    def test_update_unknown_field(self, db_engine, make_clan):
        clan = make_clan()
        with pytest.raises(ValueError):
            clan_service.update_clan(db_engine, clan.id, member_count=5)

    def test_soft_delete_hides_from_listing(self, db_engine, make_clan):
        keep = make_clan("Keep")
        gone = make_clan("Gone")
        clan_service.delete_clan(db_engine, gone.id)

        assert [c.id for c in clan_service.list_clans(db_engine)] == [keep.id]
        assert clan_service.get_clan(db_engine, gone.id).status is False

    def test_get_missing(self, db_engine):
        with pytest.raises(NotFound):
            clan_service.get_clan(db_engine, 31337)


class TestFirstJoin:

    def test_sets_active_clan_and_entry(self, db_engine, make_clan, make_user, now):
        clan = make_clan()
        ann = make_user("ann")

        result = clan_service.join_clan(db_engine, user_id=ann.id, clan_id=clan.id, now=now)

        assert result.switched is False
        assert result.previous_clan_id is None
        user = _user(db_engine, ann.id)
        assert user.active_clan_id == clan.id
        assert as_utc(user.clan_join_date) == now
        assert _entry_points(db_engine, clan, ann.id) == 0
        assert clan_service.get_clan(db_engine, clan.id).member_count == 1

    def test_rejoining_current_clan(self, db_engine, make_clan, make_user, now):
        clan = make_clan()
        ann = make_user("ann")
        clan_service.join_clan(db_engine, user_id=ann.id, clan_id=clan.id, now=now)
        with pytest.raises(AlreadyJoined):
            clan_service.join_clan(
                db_engine, user_id=ann.id, clan_id=clan.id, now=now + timedelta(days=60)
            )

    def test_deleted_clan_cannot_be_joined(self, db_engine, make_clan, make_user, now):
        clan = make_clan()
        clan_service.delete_clan(db_engine, clan.id)
        with pytest.raises(NotFound):
            clan_service.join_clan(db_engine, user_id=make_user("ann").id, clan_id=clan.id, now=now)

    def test_deactivated_user(self, db_engine, make_clan, make_user, now):
        clan = make_clan()
        ann = make_user("ann")
        user_service.deactivate_user(db_engine, ann.id)
        with pytest.raises(InactiveUser):
            clan_service.join_clan(db_engine, user_id=ann.id, clan_id=clan.id, now=now)


class TestSwitchCooldown:

    @pytest.fixture
    def setup(self, db_engine, make_clan, make_user, now):
        c1 = make_clan("C1")
        c2 = make_clan("C2")
        ann = make_user("ann")
        clan_service.join_clan(db_engine, user_id=ann.id, clan_id=c1.id, now=now)
        return c1, c2, ann

    def test_switch_after_ten_days_fails(self, db_engine, setup, now):
        c1, c2, ann = setup
        with pytest.raises(CooldownNotElapsed):
            clan_service.join_clan(
                db_engine, user_id=ann.id, clan_id=c2.id, now=now + timedelta(days=10)
            )
        assert _user(db_engine, ann.id).active_clan_id == c1.id
        assert _memberships(db_engine, ann.id) == {c1.id: True}

    def test_switch_after_thirty_one_days_succeeds(self, db_engine, setup, now):
        c1, c2, ann = setup
        later = now + timedelta(days=31)

        result = clan_service.join_clan(db_engine, user_id=ann.id, clan_id=c2.id, now=later)

        assert result.switched is True
        assert result.previous_clan_id == c1.id
        user = _user(db_engine, ann.id)
        assert user.active_clan_id == c2.id
        assert as_utc(user.clan_join_date) == later
        assert _memberships(db_engine, ann.id) == {c1.id: False, c2.id: True}
        assert clan_service.get_clan(db_engine, c1.id).member_count == 0
        assert clan_service.get_clan(db_engine, c2.id).member_count == 1

    def test_custom_cooldown(self, db_engine, setup, now):
        _, c2, ann = setup
        result = clan_service.join_clan(
            db_engine, user_id=ann.id, clan_id=c2.id, cooldown_days=7, now=now + timedelta(days=8)
        )
        assert result.switched is True

    def test_old_entry_is_kept(self, db_engine, setup, now):
        c1, c2, ann = setup
        leaderboard_service.award_points(
            db_engine, leaderboard_id=c1.leaderboard.id, user_id=ann.id, delta=42, now=now
        )
        clan_service.join_clan(db_engine, user_id=ann.id, clan_id=c2.id, now=now + timedelta(days=31))

        assert _entry_points(db_engine, c1, ann.id) == 42
        assert _entry_points(db_engine, c2, ann.id) == 0

    def test_return_to_former_clan_reactivates_membership(self, db_engine, setup, now):
        c1, c2, ann = setup
        leaderboard_service.award_points(
            db_engine, leaderboard_id=c1.leaderboard.id, user_id=ann.id, delta=5, now=now
        )
        clan_service.join_clan(db_engine, user_id=ann.id, clan_id=c2.id, now=now + timedelta(days=31))
        result = clan_service.join_clan(
            db_engine, user_id=ann.id, clan_id=c1.id, now=now + timedelta(days=62)
        )

        assert result.switched is True
        assert result.membership.left_at is None
        assert _memberships(db_engine, ann.id) == {c1.id: True, c2.id: False}
        assert _entry_points(db_engine, c1, ann.id) == 5
        assert clan_service.get_clan(db_engine, c1.id).member_count == 1

    def test_failed_switch_rolls_back_everything(self, db_engine, setup, monkeypatch, now):
        c1, c2, ann = setup

        def _fail(*args, **kwargs):
            raise RuntimeError("entry insert failed")

        monkeypatch.setattr(leaderboard_service, "add_entry", _fail)
        with pytest.raises(RuntimeError):
            clan_service.join_clan(
                db_engine, user_id=ann.id, clan_id=c2.id, now=now + timedelta(days=31)
            )

        assert _user(db_engine, ann.id).active_clan_id == c1.id
        assert _memberships(db_engine, ann.id) == {c1.id: True}
        assert _entry_points(db_engine, c2, ann.id) is None
        assert clan_service.get_clan(db_engine, c1.id).member_count == 1
