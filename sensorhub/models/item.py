"""
Item model - generic named record
"""

import uuid
from sqlalchemy import String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from sensorhub.core.database import Base


class Item(Base):
    """Named record created through the API."""

    __tablename__ = "items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200))

    def __repr__(self) -> str:
        return f"<Item {self.id} ({self.name})>"
