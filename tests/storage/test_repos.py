"""Tests for storage repositories."""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from token_scanner.storage.models import Base
from token_scanner.storage.repos import (
    AlertRepository,
    DeployerProfileDTO,
    DeployerRepository,
    PortfolioRepository,
    TokenDTO,
    TokenRepository,
    TrackedWalletRepository,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
async def async_engine():
    """Create an async SQLite engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def async_session(async_engine) -> AsyncSession:
    """Create an async session for testing."""
    session_factory = async_sessionmaker(bind=async_engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def sample_token_dto() -> TokenDTO:
    """Create a sample token DTO."""
    return TokenDTO(
        address="7GCihgDB8fe6KNjn2MYtkzZcRjQy3t9GHdC8uHYmW2hr",
        ticker="TEST",
        name="Test Token",
        deployer_address="DeP1oyer1111111111111111111111111111111111",
        launched_at=NOW - timedelta(hours=1),
        initial_price=0.000000028,
        deployer_snapshot={"reputation": 0.5},
        metrics={"holder_count": 50, "liquidity_amount": 5.0},
        score=0.6,
    )


# ============================================================================
# TokenRepository Tests
# ============================================================================


class TestTokenRepository:
    """Tests for TokenRepository."""

    @pytest.mark.asyncio
    async def test_insert_and_get(self, async_session, sample_token_dto):
        """Test inserting and retrieving a token."""
        repo = TokenRepository(async_session)

        created = await repo.insert(sample_token_dto)
        retrieved = await repo.get_by_address(sample_token_dto.address)

        assert created.id is not None
        assert retrieved is not None
        assert retrieved.metrics == {"holder_count": 50, "liquidity_amount": 5.0}
        assert retrieved.launched_at.tzinfo is not None
        assert retrieved.is_cto is False

    @pytest.mark.asyncio
    async def test_get_missing(self, async_session):
        """Test that unknown addresses return None."""
        assert await TokenRepository(async_session).get_by_address("missing") is None

    @pytest.mark.asyncio
    async def test_address_unique(self, async_session, sample_token_dto):
        """Test that a token address can only be stored once."""
        repo = TokenRepository(async_session)
        await repo.insert(sample_token_dto)

        with pytest.raises(IntegrityError):
            await repo.insert(sample_token_dto)

    @pytest.mark.asyncio
    async def test_update_snapshot(self, async_session, sample_token_dto):
        """Test replacing score and snapshots."""
        repo = TokenRepository(async_session)
        await repo.insert(sample_token_dto)

        updated = await repo.update_snapshot(
            sample_token_dto.address,
            score=0.9,
            metrics={"holder_count": 80},
        )
        missing = await repo.update_snapshot("missing", score=0.1, metrics={})
        async_session.expire_all()
        retrieved = await repo.get_by_address(sample_token_dto.address)

        assert updated is True
        assert missing is False
        assert retrieved.score == 0.9
        assert retrieved.metrics == {"holder_count": 80}
        assert retrieved.deployer_snapshot == {"reputation": 0.5}

    @pytest.mark.asyncio
    async def test_mark_cto_once(self, async_session, sample_token_dto):
        """Test that only the first CTO marking reports a change."""
        repo = TokenRepository(async_session)
        await repo.insert(sample_token_dto)

        assert await repo.mark_cto(sample_token_dto.address) is True
        assert await repo.mark_cto(sample_token_dto.address) is False
        assert await repo.mark_cto("missing") is False

    @pytest.mark.asyncio
    async def test_list_recent(self, async_session):
        """Test listing tokens launched since a time, newest first."""
        repo = TokenRepository(async_session)
        for i, hours in enumerate((1, 3, 30)):
            dto = TokenDTO(
                address=f"Mint{i}",
                ticker=f"T{i}",
                name=f"Token {i}",
                deployer_address="dep",
                launched_at=NOW - timedelta(hours=hours),
            )
            await repo.insert(dto)

        recent = await repo.list_recent(since=NOW - timedelta(hours=24))

        assert [t.address for t in recent] == ["Mint0", "Mint1"]


# ============================================================================
# DeployerRepository Tests
# ============================================================================


class TestDeployerRepository:
    """Tests for DeployerRepository."""

    @pytest.mark.asyncio
    async def test_insert_and_get(self, async_session):
        """Test inserting and retrieving a deployer profile."""
        repo = DeployerRepository(async_session)
        dto = DeployerProfileDTO(address="dep", reputation=0.7, total_launches=3, successful_launches=1)

        await repo.insert(dto)
        retrieved = await repo.get_by_address("dep")

        assert retrieved.reputation == 0.7
        assert retrieved.to_snapshot()["total_launches"] == 3

    @pytest.mark.asyncio
    async def test_record_launch(self, async_session):
        """Test incrementing the launch count of a known deployer."""
        repo = DeployerRepository(async_session)
        await repo.insert(DeployerProfileDTO(address="dep", total_launches=3))

        assert await repo.record_launch("dep", at=NOW) is True
        assert await repo.record_launch("unknown", at=NOW) is False

        async_session.expire_all()
        retrieved = await repo.get_by_address("dep")
        assert retrieved.total_launches == 4
        assert retrieved.last_active_at == NOW

    @pytest.mark.asyncio
    async def test_set_whitelisted(self, async_session):
        """Test toggling the whitelist flag."""
        repo = DeployerRepository(async_session)
        await repo.insert(DeployerProfileDTO(address="dep"))

        assert await repo.set_whitelisted("dep", True) is True

        async_session.expire_all()
        assert (await repo.get_by_address("dep")).is_whitelisted is True


# ============================================================================
# AlertRepository Tests
# ============================================================================


class TestAlertRepository:
    """Tests for AlertRepository."""

    @pytest.mark.asyncio
    async def test_mark_triggered_once(self, async_session):
        """Test that the triggered transition happens exactly once."""
        repo = AlertRepository(async_session)
        alert = await repo.insert(user_id="u", token_address="m", price_target=1.0, condition="above")

        assert await repo.mark_triggered(alert.id, price=1.2, at=NOW) is True
        assert await repo.mark_triggered(alert.id, price=1.3, at=NOW) is False

        async_session.expire_all()
        retrieved = await repo.get(alert.id)
        assert retrieved.active is False
        assert retrieved.trigger_price == 1.2
        assert retrieved.notification_count == 1

    @pytest.mark.asyncio
    async def test_delete_for_user(self, async_session):
        """Test that alerts are only deleted by their owner."""
        repo = AlertRepository(async_session)
        alert = await repo.insert(user_id="u", token_address="m", price_target=1.0, condition="below")

        assert await repo.delete_for_user("other", alert.id) is False
        assert await repo.delete_for_user("u", alert.id) is True
        assert await repo.list_for_user("u") == []

    @pytest.mark.asyncio
    async def test_list_active_and_expire(self, async_session):
        """Test expiring old alerts and listing the rest."""
        repo = AlertRepository(async_session)
        old = await repo.insert(
            user_id="u",
            token_address="m",
            price_target=1.0,
            condition="above",
            created_at=NOW - timedelta(days=10),
        )
        fresh = await repo.insert(user_id="u", token_address="m", price_target=2.0, condition="above", created_at=NOW)

        expired = await repo.expire_older_than(NOW - timedelta(days=7), at=NOW)

        async_session.expire_all()
        assert expired == 1
        assert [a.id for a in await repo.list_active()] == [fresh.id]
        assert (await repo.get(old.id)).expired_at == NOW


# ============================================================================
# PortfolioRepository Tests
# ============================================================================


class TestPortfolioRepository:
    """Tests for PortfolioRepository."""

    @pytest.mark.asyncio
    async def test_create_and_replace(self, async_session):
        """Test replacing holdings and metric blocks in one update."""
        repo = PortfolioRepository(async_session)
        await repo.create("u")

        replaced = await repo.replace(
            "u",
            holdings=[{"token_address": "m", "amount": 1.0}],
            performance={"total_value": 2.0},
            risk={"beta": 1.0},
            at=NOW,
        )

        async_session.expire_all()
        retrieved = await repo.get_by_user("u")
        assert replaced is True
        assert retrieved.holdings == [{"token_address": "m", "amount": 1.0}]
        assert retrieved.performance == {"total_value": 2.0}
        assert retrieved.last_updated == NOW
        assert await repo.list_user_ids() == ["u"]

    @pytest.mark.asyncio
    async def test_replace_blocks_requires_current_version(self, async_session):
        """Block writes computed from superseded holdings are rejected."""
        repo = PortfolioRepository(async_session)
        await repo.create("u")
        version = (await repo.get_by_user("u")).holdings_version

        await repo.replace("u", holdings=[{"token_address": "m", "amount": 1.0}], performance={}, risk={}, at=NOW)
        stale = await repo.replace_blocks(
            "u", performance={"total_value": 9.0}, risk={}, at=NOW, expected_version=version
        )

        async_session.expire_all()
        current = await repo.get_by_user("u")
        fresh = await repo.replace_blocks(
            "u", performance={"total_value": 2.0}, risk={}, at=NOW, expected_version=current.holdings_version
        )

        async_session.expire_all()
        retrieved = await repo.get_by_user("u")
        assert stale is False
        assert fresh is True
        assert current.holdings_version == version + 1
        assert retrieved.holdings == [{"token_address": "m", "amount": 1.0}]
        assert retrieved.performance == {"total_value": 2.0}

    @pytest.mark.asyncio
    async def test_replace_missing(self, async_session):
        """Test that replacing an unknown portfolio reports no change."""
        repo = PortfolioRepository(async_session)
        assert await repo.replace("nobody", holdings=[], performance={}, risk={}, at=NOW) is False


# ============================================================================
# TrackedWalletRepository Tests
# ============================================================================


class TestTrackedWalletRepository:
    """Tests for TrackedWalletRepository."""

    @pytest.mark.asyncio
    async def test_distinct_addresses_and_stats(self, async_session):
        """Test that stats are written to every row tracking an address."""
        repo = TrackedWalletRepository(async_session)
        await repo.insert("u1", "w1")
        await repo.insert("u2", "w1")
        await repo.insert("u2", "w2")

        assert await repo.list_distinct_addresses() == ["w1", "w2"]

        updated = await repo.update_stats(
            "w1",
            last_trade_at=NOW,
            realized_pnl=1.5,
            total_trades=4,
            successful_trades=2,
            at=NOW,
        )

        async_session.expire_all()
        assert updated == 2
        assert (await repo.get("u2", "w1")).realized_pnl == 1.5
        assert (await repo.get("u2", "w2")).total_trades == 0

    @pytest.mark.asyncio
    async def test_delete(self, async_session):
        """Test untracking a wallet."""
        repo = TrackedWalletRepository(async_session)
        await repo.insert("u1", "w1")

        assert await repo.delete("u1", "w1") is True
        assert await repo.delete("u1", "w1") is False
        assert await repo.list_for_user("u1") == []
