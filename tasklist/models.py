import uuid
from datetime import datetime, timezone

from pydantic import (
    BaseModel,
    ConfigDict,
    Field as PydanticField,
    field_validator,
    model_validator,
)
from sqlalchemy import JSON, DateTime
from sqlmodel import Column, Field, SQLModel

from tasklist.core.security import BCRYPT_MAX_BYTES, password_fits


def get_utc_now():
    """Helper function to get current UTC time with timezone"""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


# Users


class User(SQLModel, table=True):
    """Database model"""

    __tablename__ = "users"

    id: str = Field(default_factory=new_id, primary_key=True)
    username: str = Field(max_length=50, unique=True, index=True)
    password_hash: str
    roles: list[str] = Field(default_factory=lambda: ["user"], sa_column=Column(JSON))
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class RegisterRequest(BaseModel):
    username: str = PydanticField(min_length=3, max_length=50)
    password: str = PydanticField(min_length=6, max_length=100)

    @field_validator("password")
    @classmethod
    def password_within_bcrypt_limit(cls, v: str) -> str:
        if not password_fits(v):
            raise ValueError(f"Password must be at most {BCRYPT_MAX_BYTES} bytes")
        return v


class LoginRequest(BaseModel):
    username: str = PydanticField(min_length=1)
    password: str = PydanticField(min_length=1)


class RefreshRequest(BaseModel):
    """Body of /auth/refresh and /auth/logout"""

    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str = PydanticField(alias="refreshToken", min_length=1)


class AuthUser(BaseModel):
    id: str
    username: str


class AuthTokens(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    access_token: str = PydanticField(alias="accessToken")
    refresh_token: str = PydanticField(alias="refreshToken")
    user: AuthUser


class AccessTokenResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    access_token: str = PydanticField(alias="accessToken")


# Tasks


class TaskBase(SQLModel):
    """Base model with shared fields"""

    task: str = Field(min_length=1)
    done: bool = Field(default=False)


class Task(TaskBase, table=True):
    """Database model"""

    __tablename__ = "tasks"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )


class TaskCreate(TaskBase):
    """Schema for creating a task"""

    pass


class TaskUpdate(SQLModel):
    """Schema for updating a task - all fields optional, at least one required"""

    task: str | None = Field(default=None, min_length=1)
    done: bool | None = None

    @model_validator(mode="after")
    def _require_one_field(self):
        if self.task is None and self.done is None:
            raise ValueError("Send at least one of 'task' or 'done'")
        return self


class TaskResponse(BaseModel):
    """Schema for task responses"""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    user_id: str = PydanticField(alias="userId")
    task: str
    done: bool
    created_at: datetime = PydanticField(alias="createdAt")
    updated_at: datetime | None = PydanticField(
        default=None, alias="updatedAt"
    )


class TaskPage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    items: list[TaskResponse]
    page: int
    page_size: int = PydanticField(alias="pageSize")
    has_more: bool = PydanticField(alias="hasMore")
