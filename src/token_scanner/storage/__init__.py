"""Storage layer - Database schemas and repositories."""

from token_scanner.storage.database import DatabaseManager, create_async_db_engine, to_async_url
from token_scanner.storage.models import (
    AlertModel,
    Base,
    DeployerProfileModel,
    PortfolioModel,
    TokenModel,
    TrackedWalletModel,
)
from token_scanner.storage.repos import (
    AlertDTO,
    AlertRepository,
    DeployerProfileDTO,
    DeployerRepository,
    PortfolioDTO,
    PortfolioRepository,
    TokenDTO,
    TokenRepository,
    TrackedWalletDTO,
    TrackedWalletRepository,
)

__all__ = [
    "AlertDTO",
    "AlertModel",
    "AlertRepository",
    "Base",
    "DatabaseManager",
    "DeployerProfileDTO",
    "DeployerProfileModel",
    "DeployerRepository",
    "PortfolioDTO",
    "PortfolioModel",
    "PortfolioRepository",
    "TokenDTO",
    "TokenModel",
    "TokenRepository",
    "TrackedWalletDTO",
    "TrackedWalletModel",
    "TrackedWalletRepository",
    "create_async_db_engine",
    "to_async_url",
]
