"""
Entity Store - Data Models
===========================
Pydantic models for every entity held by the platform, plus the insert and
patch schemas the HTTP layer validates request bodies against.

All models serialize with camelCase keys (``userId``, ``lastUpdate``) so the
browser dashboard can consume them unchanged.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class TwinType(str, Enum):
    """Kinds of physical asset a digital twin can represent."""
    ARCHITECTURE = "architecture"
    INDUSTRIAL = "industrial"
    AGRICULTURE = "agriculture"

    @classmethod
    def coerce(cls, value: Any, fallback: "TwinType") -> "TwinType":
        """Map a loosely formatted type name onto the enum, else ``fallback``."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return fallback


class TwinStatus(str, Enum):
    """Digital twin lifecycle status."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    PROCESSING = "processing"


class DeviceStatus(str, Enum):
    """IoT device link status."""
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


def utcnow() -> datetime:
    """Timezone-aware current time; every entity timestamp is UTC."""
    return datetime.now(timezone.utc)


# Device types the dashboard knows how to render. Others are accepted as-is.
KNOWN_DEVICE_TYPES = ("temperature", "humidity", "power", "vibration")


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases, populated by either name."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
    )


# =============================================================================
# ENTITIES
# =============================================================================

class User(CamelModel):
    id: int
    username: str
    password: str
    email: str
    role: str = "user"
    created_at: datetime = Field(default_factory=utcnow)


class UserPublic(CamelModel):
    """User as exposed over the API (no credential)."""
    id: int
    username: str
    email: str
    role: str
    created_at: datetime


class DigitalTwin(CamelModel):
    """
    Stored record of a simulated building, factory or farm.

    ``properties`` is a schema-less bag (dimensions, materials, features...).
    """
    id: int
    name: str
    description: Optional[str] = None
    type: TwinType
    user_id: Optional[int] = None
    status: TwinStatus = TwinStatus.PROCESSING
    properties: Optional[Dict[str, Any]] = None
    model_path: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class IotDevice(CamelModel):
    """Sensor attached (optionally) to a twin."""
    id: int
    name: str
    type: str
    location: str
    twin_id: Optional[int] = None
    status: DeviceStatus = DeviceStatus.CONNECTED
    last_value: Optional[float] = None
    unit: Optional[str] = None
    last_update: datetime = Field(default_factory=utcnow)


class WorkflowTemplate(CamelModel):
    """Marketplace template. Rating and downloads are seeded, not computed."""
    id: int
    name: str
    category: str
    description: Optional[str] = None
    price: float = Field(0.0, ge=0)
    rating: float = Field(0.0, ge=0, le=5)
    downloads: int = Field(0, ge=0)
    image_path: Optional[str] = None
    template: Optional[Dict[str, Any]] = None
    created_at: datetime = Field(default_factory=utcnow)


class Project(CamelModel):
    id: int
    name: str
    type: str
    user_id: Optional[int] = None
    twin_id: Optional[int] = None
    progress: int = Field(0, ge=0, le=100)
    status: str = "active"
    last_updated: datetime = Field(default_factory=utcnow)


# =============================================================================
# INSERT SCHEMAS
# =============================================================================

class UserCreate(CamelModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    role: str = "user"


class DigitalTwinCreate(CamelModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    type: TwinType
    user_id: Optional[int] = None
    properties: Optional[Dict[str, Any]] = None


class IotDeviceCreate(CamelModel):
    name: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    location: str = Field(..., min_length=1)
    twin_id: Optional[int] = None
    unit: Optional[str] = None


class WorkflowTemplateCreate(CamelModel):
    name: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    description: Optional[str] = None
    price: float = Field(0.0, ge=0)
    template: Optional[Dict[str, Any]] = None


class ProjectCreate(CamelModel):
    name: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    user_id: Optional[int] = None
    twin_id: Optional[int] = None


# =============================================================================
# PATCH SCHEMAS
# =============================================================================

class PatchModel(CamelModel):
    """
    Partial update payload.

    Every field is optional, but fields listed in ``REQUIRED`` may not be
    explicitly set to null: a patch can change them, never remove them.
    """
    REQUIRED: ClassVar[FrozenSet[str]] = frozenset()

    @model_validator(mode="after")
    def keep_required_fields(self):
        cleared = sorted(
            name for name in self.model_fields_set
            if name in self.REQUIRED and getattr(self, name) is None
        )
        if cleared:
            raise ValueError(f"required fields cannot be null: {', '.join(cleared)}")
        return self

    def changes(self) -> Dict[str, Any]:
        """Fields actually present in the payload, by attribute name."""
        return {name: getattr(self, name) for name in self.model_fields_set}


class DigitalTwinPatch(PatchModel):
    REQUIRED: ClassVar[FrozenSet[str]] = frozenset({"name", "type", "status"})

    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    type: Optional[TwinType] = None
    user_id: Optional[int] = None
    status: Optional[TwinStatus] = None
    properties: Optional[Dict[str, Any]] = None
    model_path: Optional[str] = None


class IotDevicePatch(PatchModel):
    REQUIRED: ClassVar[FrozenSet[str]] = frozenset({"name", "type", "location", "status"})

    name: Optional[str] = Field(None, min_length=1)
    type: Optional[str] = Field(None, min_length=1)
    location: Optional[str] = Field(None, min_length=1)
    twin_id: Optional[int] = None
    status: Optional[DeviceStatus] = None
    last_value: Optional[float] = None
    unit: Optional[str] = None


class ProjectPatch(PatchModel):
    REQUIRED: ClassVar[FrozenSet[str]] = frozenset({"name", "type", "progress", "status"})

    name: Optional[str] = Field(None, min_length=1)
    type: Optional[str] = Field(None, min_length=1)
    user_id: Optional[int] = None
    twin_id: Optional[int] = None
    progress: Optional[int] = Field(None, ge=0, le=100)
    status: Optional[str] = Field(None, min_length=1)
