from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from coreops.db.base import Base


class GrantScope(str, enum.Enum):
    COMPANY = "COMPANY"
    DIVISION = "DIVISION"


class Division(Base):
    __tablename__ = "divisions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)


# Seeded with the role catalogue; the app never writes to it at runtime.
role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", ForeignKey("roles.id"), primary_key=True),
    Column("permission_id", ForeignKey("permissions.id"), primary_key=True),
)


class Permission(Base):
    __tablename__ = "permissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(80), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    roles: Mapped[list["Role"]] = relationship(
        secondary=role_permissions,
        back_populates="permissions",
    )


class Role(Base):
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    permissions: Mapped[list[Permission]] = relationship(
        secondary=role_permissions,
        back_populates="roles",
    )


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("username"),
        UniqueConstraint("email"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    role_grants: Mapped[list["UserRoleGrant"]] = relationship(back_populates="user", cascade="all, delete-orphan")


class UserRoleGrant(Base):
    """
    A role held by a user, either company-wide or inside one division.

    COMPANY grants ignore `division_id`; DIVISION grants without a division
    could never match anything, so the table refuses them.
    """

    __tablename__ = "user_role_grants"
    __table_args__ = (
        UniqueConstraint("user_id", "role_id", "scope", "division_id"),
        CheckConstraint("scope = 'COMPANY' OR division_id IS NOT NULL", name="ck_division_grant_has_division"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    role_id: Mapped[int] = mapped_column(ForeignKey("roles.id"), nullable=False)
    scope: Mapped[GrantScope] = mapped_column(Enum(GrantScope, native_enum=False, length=20), nullable=False)
    division_id: Mapped[int | None] = mapped_column(ForeignKey("divisions.id"), nullable=True)

    user: Mapped[User] = relationship(back_populates="role_grants")
    role: Mapped[Role] = relationship()
    division: Mapped[Division | None] = relationship()
