import uuid
from datetime import datetime, timezone

from sqlalchemy import TIMESTAMP, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from shared.constants import Role
from shared.database.postgres import Base

from .enums import user_role_enum


class User(Base):
    __tablename__ = "users"

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    role: Mapped[Role] = mapped_column(user_role_enum, nullable=False, default=Role.STUDENT)
    profile_image: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_users_role", "role"),
    )
