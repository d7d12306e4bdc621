"""Deployer reputation profiles.

Profiles are created lazily the first time an address is seen. The launch
history is seeded from the launchpad's "user-created tokens" list and then
kept current as new launches by the same address are observed.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from token_scanner.gateway.models import FetchCategory
from token_scanner.scoring.engine import deployer_score
from token_scanner.storage.repos import DeployerProfileDTO, DeployerRepository

if TYPE_CHECKING:
    from token_scanner.gateway.gateway import DataGateway
    from token_scanner.gateway.models import LaunchedToken
    from token_scanner.storage.database import DatabaseManager

logger = logging.getLogger(__name__)


def profile_from_history(address: str, launches: list[LaunchedToken]) -> DeployerProfileDTO:
    """Build a fresh profile from a deployer's past launches."""
    total = len(launches)
    successful = sum(1 for token in launches if token.complete)
    value = sum(token.market_cap_sol or 0.0 for token in launches)
    last_active = max((token.created_at for token in launches), default=None)
    profile = DeployerProfileDTO(
        address=address,
        success_rate=successful / total if total else 0.0,
        total_launches=total,
        successful_launches=successful,
        total_value=value,
        last_active_at=last_active,
    )
    profile.reputation = deployer_score(profile) or 0.0
    return profile


class DeployerProfiler:
    """Looks up, and lazily creates, deployer profiles."""

    def __init__(self, db: DatabaseManager, gateway: DataGateway) -> None:
        self._db = db
        self._gateway = gateway

    async def get(self, address: str) -> DeployerProfileDTO | None:
        async with self._db.get_async_session() as session:
            return await DeployerRepository(session).get_by_address(address)

    async def lookup(self, address: str) -> DeployerProfileDTO | None:
        """Return the deployer's profile, creating it on first sighting."""
        if not address:
            return None
        existing = await self.get(address)
        if existing is not None:
            return existing

        result = await self._gateway.fetch(FetchCategory.USER_TOKENS, {"address": address})
        profile = profile_from_history(address, result.value)
        try:
            async with self._db.get_async_session() as session:
                created = await DeployerRepository(session).insert(profile)
        except IntegrityError:
            # Another task created it first.
            return await self.get(address)

        logger.info(
            "Created deployer profile %s: launches=%d successful=%d",
            address[:10] + "...",
            created.total_launches,
            created.successful_launches,
        )
        return created

    async def record_launch(self, address: str, *, at: datetime | None = None) -> None:
        """Count a newly observed launch against the deployer."""
        if not address:
            return
        async with self._db.get_async_session() as session:
            updated = await DeployerRepository(session).record_launch(address, at=at or datetime.now(UTC))
        if not updated:
            logger.debug("record_launch for unknown deployer %s", address)
