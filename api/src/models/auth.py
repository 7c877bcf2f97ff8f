"""
Authentication and user management models.

Provides both SQLAlchemy table declarations and Pydantic schemas for:
- User entities (database and API)
- PIN login requests and session responses
- Session token payloads
- Role and permission enums

Wire names are camelCase; Python attributes stay snake_case.
"""

from datetime import datetime
from typing import Optional
from enum import Enum

from sqlalchemy import String, DateTime, Index, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


# ============================================================================
# SQLAlchemy Base
# ============================================================================


class Base(DeclarativeBase):
    """
    Base class for all table declarations.

    The metadata is only used to emit DDL at startup; queries go through
    asyncpg directly.
    """
    pass


# ============================================================================
# Role and Permission Enums
# ============================================================================


class Role(str, Enum):
    """
    User roles.

    - ADMIN: every permission, including settings and user management
    - MANAGER: every permission except settings
    - USER: edits day-to-day documents and contacts, deletes nothing
    - VIEWER: read-only
    """
    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"
    VIEWER = "viewer"


class Permission(str, Enum):
    """Entity-level permissions, named ``<action>_<entity key>``."""

    EDIT_QUOTATIONS = "edit_quotations"
    EDIT_INVOICES = "edit_invoices"
    EDIT_PURCHASE_ORDERS = "edit_purchase_orders"
    EDIT_RECEIPTS = "edit_receipts"
    EDIT_CUSTOMERS = "edit_customers"
    EDIT_VENDORS = "edit_vendors"
    EDIT_EMPLOYEES = "edit_employees"
    EDIT_PAYSLIPS = "edit_payslips"
    EDIT_VEHICLES = "edit_vehicles"
    EDIT_PROJECTS = "edit_projects"
    EDIT_USAGE_ENTRIES = "edit_usage_entries"
    EDIT_MONTHLY_INVOICES = "edit_monthly_invoices"
    EDIT_SETTINGS = "edit_settings"

    DELETE_QUOTATIONS = "delete_quotations"
    DELETE_INVOICES = "delete_invoices"
    DELETE_PURCHASE_ORDERS = "delete_purchase_orders"
    DELETE_RECEIPTS = "delete_receipts"
    DELETE_CUSTOMERS = "delete_customers"
    DELETE_VENDORS = "delete_vendors"
    DELETE_EMPLOYEES = "delete_employees"
    DELETE_PAYSLIPS = "delete_payslips"
    DELETE_VEHICLES = "delete_vehicles"
    DELETE_PROJECTS = "delete_projects"
    DELETE_USAGE_ENTRIES = "delete_usage_entries"
    DELETE_MONTHLY_INVOICES = "delete_monthly_invoices"


# ============================================================================
# SQLAlchemy Models
# ============================================================================


class User(Base):
    """
    User account table.

    PINs are stored as bcrypt hashes only.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    pin_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=Role.USER.value)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP")
    )

    __table_args__ = (
        Index("idx_users_role", "role"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"


class AppSettings(Base):
    """Single-row store of application settings (row id ``default``)."""
    __tablename__ = "app_settings"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    settings: Mapped[dict] = mapped_column(JSONB, nullable=False, server_default=text("'{}'::jsonb"))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP")
    )


# ============================================================================
# Pydantic Base
# ============================================================================


class CamelModel(BaseModel):
    """Base schema serialized with camelCase field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


# ============================================================================
# Pydantic Request Models
# ============================================================================


class LoginRequest(CamelModel):
    """
    PIN login request.

    ``pin_code`` is optional at the schema level so the route can answer a
    missing PIN with its own message.
    """
    pin_code: Optional[str] = Field(
        None,
        description="User PIN code"
    )
    email: Optional[str] = Field(
        None,
        description="Restrict the PIN match to this user"
    )

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "pinCode": "1234"
            }
        },
    )


class CreateUserRequest(CamelModel):
    """Create user request. All fields are required by the route."""
    email: Optional[EmailStr] = Field(None, description="Email address")
    name: Optional[str] = Field(None, max_length=255, description="Display name")
    pin_code: Optional[str] = Field(None, max_length=32, description="Login PIN")
    role: Optional[Role] = Field(None, description="User role")

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "email": "user1@almsar.ae",
                "name": "Regular User 1",
                "pinCode": "1234",
                "role": "user"
            }
        },
    )


class UpdateUserRequest(CamelModel):
    """Update user request with optional fields."""
    email: Optional[EmailStr] = Field(None, description="Email address")
    name: Optional[str] = Field(None, max_length=255, description="Display name")
    pin_code: Optional[str] = Field(None, max_length=32, description="New PIN")
    role: Optional[Role] = Field(None, description="User role")


# ============================================================================
# Pydantic Response Models
# ============================================================================


class UserDB(BaseModel):
    """User row as stored, including the PIN hash. Never returned to clients."""
    id: str
    email: str
    name: str
    pin_hash: str
    role: Role
    created_at: datetime
    updated_at: datetime

    def to_response(self) -> "UserResponse":
        return UserResponse(
            id=self.id,
            email=self.email,
            name=self.name,
            role=self.role,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class UserResponse(CamelModel):
    """User information without any PIN data."""
    id: str = Field(..., description="User ID")
    email: str = Field(..., description="Email address")
    name: str = Field(..., description="Display name")
    role: Role = Field(..., description="User role")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "id": "user_1706266800000_k2j3h4g5f",
                "email": "admin@almsar.ae",
                "name": "Admin User",
                "role": "admin",
                "createdAt": "2025-01-15T10:30:00Z",
                "updatedAt": "2025-01-15T10:30:00Z"
            }
        },
    )


class LoginResponse(UserResponse):
    """Authenticated user plus the issued session."""
    access_token: str = Field(..., description="Bearer session token")
    token_type: str = Field(default="bearer", description="Token type")
    expires_in: int = Field(..., gt=0, description="Session lifetime in seconds")


class PermissionsResponse(CamelModel):
    """Effective permissions of the current user."""
    role: Role
    permissions: list[str]
    entities: dict[str, dict[str, bool]]


class ErrorResponse(BaseModel):
    """Error envelope."""
    error: str = Field(..., min_length=1, description="Error summary")
    details: Optional[str] = Field(None, description="Safe error details")

    model_config = {
        "json_schema_extra": {
            "example": {
                "error": "Customer not found"
            }
        }
    }


# ============================================================================
# Token Models
# ============================================================================


class TokenPayload(BaseModel):
    """Session token claims."""
    sub: str = Field(..., description="Subject (user ID)")
    email: str = Field(..., description="User email")
    role: Role = Field(..., description="User role")
    exp: int = Field(..., description="Expiration timestamp (Unix epoch)")
    iat: int = Field(..., description="Issued at timestamp (Unix epoch)")


class CurrentUser(BaseModel):
    """
    Current authenticated user.

    Injected into route handlers by the session dependency.
    """
    id: str
    email: str
    name: str
    role: Role

    def has_role(self, role: Role) -> bool:
        return self.role == role

    def is_admin(self) -> bool:
        return self.has_role(Role.ADMIN)
