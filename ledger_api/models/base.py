import re
import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase, declared_attr


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class that sets naming convention for tables (EntryLine -> entry_line)."""

    @declared_attr.directive
    def __tablename__(cls) -> str:  # type: ignore[misc]
        return re.sub(r"(?<!^)(?=[A-Z])", "_", cls.__name__).lower()
