from sqlalchemy.orm import DeclarativeBase, declared_attr


class Base(DeclarativeBase):
    """Declarative base for MealPass tables; models set explicit table names."""

    @declared_attr.directive
    def __tablename__(cls) -> str:  # noqa: N805
        return cls.__name__.lower()


# Register models on the metadata for Alembic autogenerate and create_all.
try:  # pragma: no cover - import side effects only
    import mealpass_api.models  # noqa: F401,WPS433
except ImportError:  # pragma: no cover - partial imports during migrations
    pass
