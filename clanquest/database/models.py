"""
clanquest.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- users                — Identity anchor (display name, referral code, active clan)
- campaigns            — Time-boxed events, each owning one leaderboard
- clans                — Long-lived teams, each owning one leaderboard
- campaign_clans       — The set of clans competing inside a campaign
- leaderboards         — One per campaign or per clan, never shared
- leaderboard_entries  — (leaderboard, user) → points + derived rank
- campaign_participants — Campaign memberships
- clan_participants    — Clan memberships (inactive rows kept after a switch)
- referrals            — Referrer → referred link, rewarded at most once
- reward_history       — Append-only ledger of grants
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all ClanQuest ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class LeaderboardScope(enum.StrEnum):
    """What a leaderboard ranks participants of."""
    CAMPAIGN = "campaign"
    CLAN = "clan"


class CampaignFilter(enum.StrEnum):
    """Listing filters for campaigns."""
    ACTIVE = "active"
    UPCOMING = "upcoming"
    PAST = "past"
    ALL = "all"


class CampaignPhase(enum.StrEnum):
    """Real-time phase of a campaign relative to *now*."""
    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    referral_code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False)
    active_clan_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("clans.id", ondelete="SET NULL"), default=None
    )
    clan_join_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), onupdate=_utcnow
    )

    __table_args__ = (
        Index("ix_users_active_clan_id", "active_clan_id"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.display_name!r} clan={self.active_clan_id}>"


# ---------------------------------------------------------------------------
# Campaigns
# ---------------------------------------------------------------------------
class Campaign(Base):
    __tablename__ = "campaigns"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    banner: Mapped[str | None] = mapped_column(String(500), default=None)
    organiser_logo: Mapped[str | None] = mapped_column(String(500), default=None)
    organiser_link: Mapped[str | None] = mapped_column(String(500), default=None)
    reward_pool: Mapped[float] = mapped_column(Float, default=0.0)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[bool] = mapped_column(Boolean, default=True)
    participant_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), onupdate=_utcnow
    )

    leaderboard: Mapped[Leaderboard] = relationship(
        back_populates="campaign", uselist=False, cascade="all, delete-orphan"
    )
    participants: Mapped[list[CampaignParticipant]] = relationship(
        back_populates="campaign", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("start_date <= end_date", name="ck_campaigns_date_order"),
        Index("ix_campaigns_start_date", "start_date"),
    )

    def __repr__(self) -> str:
        return f"<Campaign id={self.id} title={self.title!r} status={self.status}>"


# ---------------------------------------------------------------------------
# Clans
# ---------------------------------------------------------------------------
class Clan(Base):
    __tablename__ = "clans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    banner: Mapped[str | None] = mapped_column(String(500), default=None)
    clan_score: Mapped[float] = mapped_column(Float, default=0.0)
    status: Mapped[bool] = mapped_column(Boolean, default=True)  # False = soft-deleted
    member_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), onupdate=_utcnow
    )

    leaderboard: Mapped[Leaderboard] = relationship(
        back_populates="clan", uselist=False, cascade="all, delete-orphan"
    )
    participants: Mapped[list[ClanParticipant]] = relationship(
        back_populates="clan", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Clan id={self.id} title={self.title!r} status={self.status}>"


class CampaignClan(Base):
    """Clans eligible to compete inside a campaign."""
    __tablename__ = "campaign_clans"

    campaign_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("campaigns.id", ondelete="CASCADE"), primary_key=True
    )
    clan_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("clans.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )


# ---------------------------------------------------------------------------
# Leaderboards
# ---------------------------------------------------------------------------
class Leaderboard(Base):
    """Exactly one of ``campaign_id`` / ``clan_id`` is set."""
    __tablename__ = "leaderboards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    campaign_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("campaigns.id", ondelete="CASCADE"), unique=True, default=None
    )
    clan_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("clans.id", ondelete="CASCADE"), unique=True, default=None
    )
    last_ranked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    campaign: Mapped[Campaign | None] = relationship(back_populates="leaderboard")
    clan: Mapped[Clan | None] = relationship(back_populates="leaderboard")
    entries: Mapped[list[LeaderboardEntry]] = relationship(
        back_populates="leaderboard", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint(
            "(campaign_id IS NULL) <> (clan_id IS NULL)",
            name="ck_leaderboards_single_owner",
        ),
    )

    @property
    def scope(self) -> LeaderboardScope:
        return LeaderboardScope.CAMPAIGN if self.campaign_id is not None else LeaderboardScope.CLAN

    def __repr__(self) -> str:
        return f"<Leaderboard id={self.id} scope={self.scope.value}>"


class LeaderboardEntry(Base):
    """One row per (leaderboard, user).

    ``user_name`` is captured at join time and never re-synced.
    ``rank`` is derived state, written only by the ranking recompute.
    """
    __tablename__ = "leaderboard_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    leaderboard_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("leaderboards.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    user_name: Mapped[str] = mapped_column(String(100), nullable=False)
    rank: Mapped[int] = mapped_column(Integer, default=0)
    points: Mapped[float] = mapped_column(Float, default=0.0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), onupdate=_utcnow
    )

    leaderboard: Mapped[Leaderboard] = relationship(back_populates="entries")

    __table_args__ = (
        UniqueConstraint("leaderboard_id", "user_id", name="uq_leaderboard_entries_board_user"),
        Index("ix_leaderboard_entries_board_points", "leaderboard_id", "points"),
        Index("ix_leaderboard_entries_user", "user_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<LeaderboardEntry board={self.leaderboard_id} user={self.user_id} "
            f"pts={self.points} rank={self.rank}>"
        )


# ---------------------------------------------------------------------------
# Memberships
# ---------------------------------------------------------------------------
class CampaignParticipant(Base):
    __tablename__ = "campaign_participants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    campaign_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    clan_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("clans.id", ondelete="SET NULL"), default=None
    )
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    campaign: Mapped[Campaign] = relationship(back_populates="participants")

    __table_args__ = (
        UniqueConstraint("campaign_id", "user_id", name="uq_campaign_participants_campaign_user"),
        Index("ix_campaign_participants_user", "user_id"),
    )


class ClanParticipant(Base):
    """Clan membership.  After a switch the old row is kept with ``active=False``."""
    __tablename__ = "clan_participants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    clan_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("clans.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    left_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    clan: Mapped[Clan] = relationship(back_populates="participants")

    __table_args__ = (
        UniqueConstraint("clan_id", "user_id", name="uq_clan_participants_clan_user"),
        Index("ix_clan_participants_user", "user_id"),
    )


# ---------------------------------------------------------------------------
# Referrals & rewards
# ---------------------------------------------------------------------------
class Referral(Base):
    __tablename__ = "referrals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    referrer_user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    referred_user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    referral_code: Mapped[str] = mapped_column(String(32), nullable=False)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    reward_given: Mapped[bool] = mapped_column(Boolean, default=False)
    rewarded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    action_id: Mapped[str | None] = mapped_column(String(64), default=None)

    __table_args__ = (
        Index("ix_referrals_referrer", "referrer_user_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Referral id={self.id} {self.referrer_user_id}->{self.referred_user_id} "
            f"rewarded={self.reward_given}>"
        )


class RewardHistory(Base):
    """Append-only.  ``campaign_ref`` is a campaign id or a sentinel such as
    ``REFERRAL_REWARD_CAMPAIGN``."""
    __tablename__ = "reward_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    campaign_ref: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    reward_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_reward_history_user", "user_id"),
        Index("ix_reward_history_campaign_ref", "campaign_ref"),
    )
