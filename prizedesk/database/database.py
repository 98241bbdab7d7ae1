from typing import Optional, List
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy import select, update, func
from contextlib import asynccontextmanager

from prizedesk.config import Config
from prizedesk.database.models import (
    Base, User, Tournament, Registration, TournamentResult, WalletTransaction, TransactionStatus
)
from prizedesk.utils.exceptions import ValidationError
from prizedesk.utils.logger import setup_logger


def async_database_url(url: str) -> str:
    """Plain sqlite URLs are served through aiosqlite"""
    if url.startswith('sqlite:///'):
        return url.replace('sqlite:///', 'sqlite+aiosqlite:///', 1)
    return url


class Database:
    """Engine, session factory and the store helpers the operations layer builds on"""

    def __init__(self, database_url: Optional[str] = None):
        self.logger = setup_logger(__name__)
        self.database_url = async_database_url(database_url or Config.DATABASE_URL)
        self.engine = None
        self.async_session = None

    async def initialize(self):
        """Create the engine and session factory, then any missing tables"""
        self.engine = create_async_engine(self.database_url, echo=Config.DEBUG)
        self.async_session = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.logger.info(f"Database ready at {self.engine.url.render_as_string(hide_password=True)}")

    @property
    def session_factory(self):
        return self.async_session

    @asynccontextmanager
    async def get_session(self):
        """Session without an implicit commit; rolled back if the block raises"""
        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    @asynccontextmanager
    async def transaction(self):
        """
        Session committed when the block exits cleanly.

        Operations that accept a `session` argument join this transaction
        instead of committing on their own:

            async with db.transaction() as session:
                await tournament_ops.update_status(tid, 'live', session=session)
                await verification_ops.verify_result(rid, admin_id, 4, 1, session=session)

        Settlement never joins a caller's transaction.
        """
        async with self.get_session() as session:
            yield session
            await session.commit()

    async def close(self):
        if self.engine:
            await self.engine.dispose()
            self.logger.info("Database connection closed")

    # User operations
    async def create_user(self, username: str, discord_id: int = None) -> User:
        """Create a new user with an empty wallet"""
        async with self.get_session() as session:
            user = User(username=username, discord_id=discord_id, wallet_balance=0.0)
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user

    async def get_user(self, user_id: int) -> Optional[User]:
        async with self.get_session() as session:
            return await session.get(User, user_id)

    async def get_or_create_user(self, discord_id: int, username: str) -> User:
        """Get the user linked to a Discord account, creating it on first use"""
        async with self.get_session() as session:
            result = await session.execute(select(User).where(User.discord_id == discord_id))
            user = result.scalar_one_or_none()
            if user:
                return user

            user = User(username=username, discord_id=discord_id, wallet_balance=0.0)
            session.add(user)
            await session.commit()
            await session.refresh(user)
            self.logger.info(f"Created user {user.id} for Discord account {discord_id}")
            return user

    async def get_wallet_balance(self, user_id: int) -> float:
        async with self.get_session() as session:
            result = await session.execute(select(User.wallet_balance).where(User.id == user_id))
            balance = result.scalar_one_or_none()
            return balance or 0.0

    async def credit_wallet(self, session: AsyncSession, user_id: int, amount: float) -> float:
        """
        Credit a user's wallet by an additive delta and return the new balance.

        Runs inside the caller's session so the credit commits or rolls back
        together with the ledger entry it belongs to.
        """
        if amount < 0:
            raise ValidationError('amount', 'wallet credits must not be negative')

        result = await session.execute(
            update(User)
            .where(User.id == user_id)
            .values(wallet_balance=User.wallet_balance + amount)
        )
        if result.rowcount != 1:
            raise LookupError(f"User {user_id} not found")

        balance = await session.execute(select(User.wallet_balance).where(User.id == user_id))
        return balance.scalar_one()

    async def list_wallet_transactions(self, user_id: int = None, tournament_id: int = None,
                                       include_failed: bool = True) -> List[WalletTransaction]:
        async with self.get_session() as session:
            query = select(WalletTransaction)
            if user_id is not None:
                query = query.where(WalletTransaction.user_id == user_id)
            if tournament_id is not None:
                query = query.where(WalletTransaction.tournament_id == tournament_id)
            if not include_failed:
                query = query.where(WalletTransaction.status != TransactionStatus.FAILED)
            query = query.order_by(WalletTransaction.id)

            result = await session.execute(query)
            return result.scalars().all()

    # Tournament directory
    async def get_tournament(self, tournament_id: int, session: AsyncSession = None) -> Optional[Tournament]:
        """Get a tournament by ID"""
        if session is not None:
            return await session.get(Tournament, tournament_id)
        async with self.get_session() as s:
            return await s.get(Tournament, tournament_id)

    async def get_all_tournaments(self) -> List[Tournament]:
        async with self.get_session() as session:
            result = await session.execute(select(Tournament).order_by(Tournament.id))
            return result.scalars().all()

    # Registration directory
    async def list_registrations(self, tournament_id: int, session: AsyncSession = None) -> List[Registration]:
        """List registrations of a tournament in registration order"""
        query = (
            select(Registration)
            .where(Registration.tournament_id == tournament_id)
            .order_by(Registration.id)
        )
        if session is not None:
            result = await session.execute(query)
            return result.scalars().all()
        async with self.get_session() as s:
            result = await s.execute(query)
            return result.scalars().all()

    async def count_registrations(self, tournament_id: int) -> int:
        async with self.get_session() as session:
            result = await session.execute(
                select(func.count(Registration.id)).where(Registration.tournament_id == tournament_id)
            )
            return result.scalar()

    # Screenshot/asset store
    async def get_result_image_url(self, result_id: int) -> Optional[str]:
        """Screenshot URL attached to a result, if any"""
        async with self.get_session() as session:
            result = await session.execute(
                select(TournamentResult.screenshot_url).where(TournamentResult.id == result_id)
            )
            return result.scalar_one_or_none()
