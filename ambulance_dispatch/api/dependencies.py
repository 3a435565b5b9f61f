"""FastAPI dependency injection helpers."""

from sqlalchemy.ext.asyncio import AsyncSession

from ambulance_dispatch.infrastructure.database import async_session_factory
from ambulance_dispatch.services.factory import Services, default_services

_services: Services | None = None


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; services commit their own unit of work."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_services() -> Services:
    """Process-wide services wired to Redis, built on first use."""
    global _services
    if _services is None:
        _services = await default_services()
    return _services
