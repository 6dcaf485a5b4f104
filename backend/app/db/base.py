"""Database base and model registry."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


def import_models() -> None:
    """Import every model module so ``Base.metadata`` knows all tables."""
    import app.models  # noqa: F401
