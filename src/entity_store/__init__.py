"""
Entity Store Package
=====================
In-memory keyed collections for every platform entity.
"""

from .models import (
    TwinType,
    TwinStatus,
    DeviceStatus,
    KNOWN_DEVICE_TYPES,
    CamelModel,
    User,
    UserPublic,
    DigitalTwin,
    IotDevice,
    WorkflowTemplate,
    Project,
    UserCreate,
    DigitalTwinCreate,
    IotDeviceCreate,
    WorkflowTemplateCreate,
    ProjectCreate,
    DigitalTwinPatch,
    IotDevicePatch,
    ProjectPatch,
)
from .memory_store import EntityStore, DuplicateUserError
from .sample_data import seed_sample_data, FIRST_DYNAMIC_ID

__all__ = [
    "TwinType",
    "TwinStatus",
    "DeviceStatus",
    "KNOWN_DEVICE_TYPES",
    "CamelModel",
    "User",
    "UserPublic",
    "DigitalTwin",
    "IotDevice",
    "WorkflowTemplate",
    "Project",
    "UserCreate",
    "DigitalTwinCreate",
    "IotDeviceCreate",
    "WorkflowTemplateCreate",
    "ProjectCreate",
    "DigitalTwinPatch",
    "IotDevicePatch",
    "ProjectPatch",
    "EntityStore",
    "DuplicateUserError",
    "seed_sample_data",
    "FIRST_DYNAMIC_ID",
]
