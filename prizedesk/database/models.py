from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Text, Float,
    ForeignKey, BigInteger, Enum as SQLEnum, UniqueConstraint, CheckConstraint, Index, JSON, text
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func
from enum import Enum
from typing import Dict

from prizedesk.config import Config
from prizedesk.utils.reward_rules import AutoReward, ManualReward, TournamentEconomics

Base = declarative_base()

class TournamentStatus(Enum):
    DRAFT = "draft"
    UPCOMING = "upcoming"
    SCHEDULED = "scheduled"
    LIVE = "live"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class MatchType(Enum):
    SOLO = "solo"
    DUO = "duo"
    TRIO = "trio"
    SQUAD = "squad"
    CUSTOM = "custom"

class ResultState(Enum):
    UNSUBMITTED = "unsubmitted"
    SUBMITTED = "submitted"
    VERIFIED = "verified"
    DISTRIBUTED = "distributed"

class TransactionType(Enum):
    PRIZE_FIRST = "prize_first"
    PRIZE_SECOND = "prize_second"
    PRIZE_KILLS = "prize_kills"
    PRIZE = "prize"

class TransactionStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

class User(Base):
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    discord_id = Column(BigInteger, unique=True, nullable=True, index=True)
    username = Column(String(100), nullable=False)

    # Only ever changed by additive deltas from the settlement ledger
    wallet_balance = Column(Float, default=0.0, nullable=False)

    # Metadata
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    registrations = relationship("Registration", back_populates="user")
    transactions = relationship("WalletTransaction", back_populates="user")

    __table_args__ = (
        CheckConstraint('wallet_balance >= 0', name='ck_users_wallet_non_negative'),
    )

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', balance={self.wallet_balance})>"

class Tournament(Base):
    __tablename__ = 'tournaments'

    id = Column(Integer, primary_key=True)
    title = Column(String(200), nullable=False)
    game_mode = Column(String(50), default="battle_royale")
    match_type = Column(SQLEnum(MatchType), default=MatchType.SQUAD, nullable=False)
    status = Column(SQLEnum(TournamentStatus), default=TournamentStatus.UPCOMING, nullable=False)

    # Economics
    entry_fee = Column(Float, default=0.0, nullable=False)
    max_teams = Column(Integer, nullable=False)
    company_commission_percentage = Column(Float, default=Config.DEFAULT_COMMISSION_PERCENTAGE, nullable=False)

    # Tagged reward values: amount + "manually set" flag
    first_place_prize = Column(Float, default=0.0, nullable=False)
    first_place_prize_manual = Column(Boolean, default=False, nullable=False)
    kill_reward_per_kill = Column(Float, default=0.0, nullable=False)
    kill_reward_manual = Column(Boolean, default=False, nullable=False)

    # {"1": 60, "2": 30} - position -> percentage of the prize pool
    position_reward_table = Column(JSON, default=dict)

    # Settlement summary
    total_distributed = Column(Float, default=0.0, nullable=False)
    prizes_distributed_at = Column(DateTime, nullable=True)

    # Scheduling
    starts_at = Column(DateTime, nullable=True)

    # Metadata
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())
    created_by = Column(BigInteger, nullable=True)  # Admin Discord ID

    registrations = relationship("Registration", back_populates="tournament", cascade="all, delete-orphan")
    results = relationship("TournamentResult", back_populates="tournament", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint('entry_fee >= 0', name='ck_tournaments_entry_fee'),
        CheckConstraint('max_teams > 0', name='ck_tournaments_max_teams'),
        CheckConstraint(
            'company_commission_percentage >= 0 AND company_commission_percentage <= 100',
            name='ck_tournaments_commission'
        ),
    )

    @property
    def position_rewards(self) -> Dict[int, float]:
        """Position table with integer keys (JSON stores them as strings)"""
        return {int(k): float(v) for k, v in (self.position_reward_table or {}).items()}

    def to_economics(self) -> TournamentEconomics:
        """Build the reward-rules view of this tournament"""
        first_cls = ManualReward if self.first_place_prize_manual else AutoReward
        kill_cls = ManualReward if self.kill_reward_manual else AutoReward
        return TournamentEconomics(
            entry_fee=self.entry_fee,
            max_teams=self.max_teams,
            match_type=self.match_type.value if self.match_type else Config.DEFAULT_MATCH_TYPE,
            commission_percentage=self.company_commission_percentage,
            first_place_prize=first_cls(self.first_place_prize or 0.0),
            kill_reward_per_kill=kill_cls(self.kill_reward_per_kill or 0.0),
            position_rewards=self.position_rewards,
        )

    def apply_economics(self, economics: TournamentEconomics):
        """Persist the tagged reward values back onto the row"""
        self.first_place_prize = economics.first_place_prize.amount
        self.first_place_prize_manual = economics.first_place_prize.is_manual
        self.kill_reward_per_kill = economics.kill_reward_per_kill.amount
        self.kill_reward_manual = economics.kill_reward_per_kill.is_manual

    def __repr__(self):
        return f"<Tournament(id={self.id}, title='{self.title}', status={self.status})>"

class Registration(Base):
    __tablename__ = 'registrations'

    id = Column(Integer, primary_key=True)
    tournament_id = Column(Integer, ForeignKey('tournaments.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    display_name = Column(String(100), nullable=False)
    team_name = Column(String(100), nullable=True)

    registered_at = Column(DateTime, default=func.now())

    tournament = relationship("Tournament", back_populates="registrations")
    user = relationship("User", back_populates="registrations")
    result = relationship("TournamentResult", back_populates="registration", uselist=False)

    __table_args__ = (UniqueConstraint('tournament_id', 'user_id'),)

    def __repr__(self):
        return f"<Registration(id={self.id}, tournament={self.tournament_id}, user={self.user_id})>"

class TournamentResult(Base):
    """
    One result record per registration per tournament.

    Reward columns are derived and always satisfy
    total_reward == placement_reward + kill_reward.
    """
    __tablename__ = 'tournament_results'

    id = Column(Integer, primary_key=True)
    tournament_id = Column(Integer, ForeignKey('tournaments.id'), nullable=False, index=True)
    registration_id = Column(Integer, ForeignKey('registrations.id'), nullable=False)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)

    # Match outcome
    kills = Column(Integer, default=0, nullable=False)
    position = Column(Integer, nullable=True)
    screenshot_url = Column(String(500), nullable=True)

    # Player submission
    result_submitted = Column(Boolean, default=False, nullable=False)
    result_submitted_at = Column(DateTime, nullable=True)

    # Admin verification
    result_verified = Column(Boolean, default=False, nullable=False)
    result_verified_at = Column(DateTime, nullable=True)
    verified_by = Column(BigInteger, nullable=True)  # Admin Discord ID
    verification_notes = Column(Text, nullable=True)

    # Reward snapshot
    kill_reward = Column(Float, default=0.0, nullable=False)
    placement_reward = Column(Float, default=0.0, nullable=False)
    total_reward = Column(Float, default=0.0, nullable=False)

    # Terminal once true
    reward_distributed = Column(Boolean, default=False, nullable=False)
    reward_distributed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    tournament = relationship("Tournament", back_populates="results")
    registration = relationship("Registration", back_populates="result")
    user = relationship("User")
    transactions = relationship("WalletTransaction", back_populates="result")

    __table_args__ = (
        UniqueConstraint('tournament_id', 'registration_id'),
        CheckConstraint('kills >= 0', name='ck_results_kills'),
        CheckConstraint('position IS NULL OR position > 0', name='ck_results_position'),
        CheckConstraint(
            'kill_reward >= 0 AND placement_reward >= 0 AND total_reward >= 0',
            name='ck_results_rewards_non_negative'
        ),
    )

    @property
    def state(self) -> ResultState:
        if self.reward_distributed:
            return ResultState.DISTRIBUTED
        if self.result_verified:
            return ResultState.VERIFIED
        if self.result_submitted:
            return ResultState.SUBMITTED
        return ResultState.UNSUBMITTED

    @property
    def position_label(self) -> str:
        if self.position is None:
            return "-"
        if 10 <= self.position % 100 <= 20:
            suffix = "th"
        else:
            suffix = {1: "st", 2: "nd", 3: "rd"}.get(self.position % 10, "th")
        return f"{self.position}{suffix}"

    def __repr__(self):
        return (
            f"<TournamentResult(id={self.id}, tournament={self.tournament_id}, kills={self.kills}, "
            f"position={self.position}, total={self.total_reward}, state={self.state.value})>"
        )

class WalletTransaction(Base):
    """
    Ledger entry for a wallet credit.

    The partial unique index guarantees at most one non-failed transaction
    per (result, type), so a second paying transaction is refused by the store.
    """
    __tablename__ = 'wallet_transactions'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    tournament_id = Column(Integer, ForeignKey('tournaments.id'), nullable=True)
    result_id = Column(Integer, ForeignKey('tournament_results.id'), nullable=True)

    amount = Column(Float, nullable=False)
    type = Column(SQLEnum(TransactionType), nullable=False)
    status = Column(SQLEnum(TransactionStatus), default=TransactionStatus.PENDING, nullable=False)
    description = Column(String(255), nullable=False)
    balance_after = Column(Float, nullable=True)

    created_at = Column(DateTime, default=func.now())

    user = relationship("User", back_populates="transactions")
    result = relationship("TournamentResult", back_populates="transactions")

    __table_args__ = (
        CheckConstraint('amount > 0', name='ck_wallet_transactions_amount'),
        Index(
            'uq_wallet_transactions_result_type',
            'result_id', 'type',
            unique=True,
            sqlite_where=text("status != 'FAILED'"),
            postgresql_where=text("status != 'FAILED'"),
        ),
    )

    def __repr__(self):
        return f"<WalletTransaction(user_id={self.user_id}, amount={self.amount}, type={self.type.value}, status={self.status.value})>"

class Configuration(Base):
    __tablename__ = 'configurations'

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False)  # JSON-encoded
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Configuration(key='{self.key}')>"

class AdminAuditLog(Base):
    __tablename__ = 'admin_audit_logs'

    id = Column(Integer, primary_key=True)
    admin_id = Column(BigInteger, nullable=True)  # Discord ID, None for system actions
    action_type = Column(String(50), nullable=False)
    target_type = Column(String(50), nullable=True)
    target_id = Column(Integer, nullable=True)
    details = Column(Text, nullable=True)  # JSON
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=func.now())

    def __repr__(self):
        return f"<AdminAuditLog(action='{self.action_type}', admin={self.admin_id}, target={self.target_type}:{self.target_id})>"
