import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from refurbops.database import Base
from refurbops.db_types import UUIDType


class User(Base):
    """
    Actor directory entry.

    Authentication happens upstream; the core only reads users to resolve an
    actor's role and to find alert recipients.
    """
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    role: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
        comment="SUPERADMIN, ADMIN, WAREHOUSE_MANAGER, MIS_WAREHOUSE_EXECUTIVE, INSPECTION_ENGINEER, "
                "REPAIR_ENGINEER, PAINT_SHOP_TECHNICIAN, QC_ENGINEER",
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<User(name='{self.name}', role='{self.role}')>"
