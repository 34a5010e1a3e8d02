"""Database session management."""
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

SQLALCHEMY_DATABASE_URL = "sqlite+aiosqlite:///./data/blocker.db"


def create_session_factory(url: str = SQLALCHEMY_DATABASE_URL, echo: bool = False):
    """Create an async engine and a session factory bound to it."""
    engine = create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,  # Enable connection health checks
    )
    return sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Prevent expired object errors
    )
