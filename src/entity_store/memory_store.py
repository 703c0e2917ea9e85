"""
Entity Store - In-Memory Collections
=====================================
Keyed collections for users, digital twins, IoT devices, workflow templates
and projects.

Responsibilities:
- Assign identifiers from one counter shared by every entity type
- Fill defaulted fields (status, timestamps, counters) on creation
- Apply partial updates field by field, refreshing lifecycle timestamps
- Filter collections by owner, twin or category

Nothing is persisted: the store lives and dies with the process.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Type, TypeVar

from loguru import logger
from pydantic import BaseModel

from .models import (
    DigitalTwin,
    DigitalTwinCreate,
    DigitalTwinPatch,
    IotDevice,
    IotDeviceCreate,
    IotDevicePatch,
    PatchModel,
    Project,
    ProjectCreate,
    ProjectPatch,
    User,
    UserCreate,
    WorkflowTemplate,
    WorkflowTemplateCreate,
    utcnow,
)

EntityT = TypeVar("EntityT", bound=BaseModel)


class DuplicateUserError(ValueError):
    """Raised when a username or email is already registered."""


def _touch(previous: datetime) -> datetime:
    """New lifecycle timestamp, never earlier than the previous one."""
    now = utcnow()
    return now if now >= previous else previous


def _merge(entity: EntityT, patch: PatchModel, fields: Iterable[str], stamp: str) -> EntityT:
    """
    Copy the listed fields present in ``patch`` onto ``entity``.

    Fields absent from the patch keep their stored value, and ``stamp`` is
    always refreshed.
    """
    changes = patch.changes()
    update = {name: changes[name] for name in fields if name in changes}
    update[stamp] = _touch(getattr(entity, stamp))
    return entity.model_copy(update=update)


def merge_digital_twin(twin: DigitalTwin, patch: DigitalTwinPatch) -> DigitalTwin:
    return _merge(
        twin, patch,
        ("name", "description", "type", "user_id", "status", "properties", "model_path"),
        stamp="updated_at",
    )


def merge_iot_device(device: IotDevice, patch: IotDevicePatch) -> IotDevice:
    # lastUpdate moves on every call, even when the value is unchanged
    return _merge(
        device, patch,
        ("name", "type", "location", "twin_id", "status", "last_value", "unit"),
        stamp="last_update",
    )


def merge_project(project: Project, patch: ProjectPatch) -> Project:
    return _merge(
        project, patch,
        ("name", "type", "user_id", "twin_id", "progress", "status"),
        stamp="last_updated",
    )


class EntityStore:
    """
    In-memory store for all platform entities.

    One instance is created at process start and handed to the web
    application. Every call runs to completion under a re-entrant lock and
    returns copies, so callers can never mutate stored state in place.
    """

    def __init__(self, first_id: int = 1):
        """
        Initialize empty collections.

        Args:
            first_id: First identifier handed out by the shared counter
        """
        self._users: Dict[int, User] = {}
        self._digital_twins: Dict[int, DigitalTwin] = {}
        self._iot_devices: Dict[int, IotDevice] = {}
        self._workflow_templates: Dict[int, WorkflowTemplate] = {}
        self._projects: Dict[int, Project] = {}

        self._collections: Dict[Type[BaseModel], Dict[int, BaseModel]] = {
            User: self._users,
            DigitalTwin: self._digital_twins,
            IotDevice: self._iot_devices,
            WorkflowTemplate: self._workflow_templates,
            Project: self._projects,
        }

        self._next_id = first_id
        self._lock = threading.RLock()

        logger.info("EntityStore initialized")

    # -------------------------------------------------------------------------
    # Identifier allocation
    # -------------------------------------------------------------------------

    def _allocate_id(self) -> int:
        with self._lock:
            entity_id = self._next_id
            self._next_id += 1
            return entity_id

    @property
    def next_id(self) -> int:
        """Identifier the next ``create_*`` call will assign."""
        return self._next_id

    def advance_counter(self, next_id: int) -> None:
        """Move the shared counter forward (never backward)."""
        with self._lock:
            self._next_id = max(self._next_id, next_id)

    def import_entity(self, entity: BaseModel) -> None:
        """
        Store a fully built entity under its own identifier.

        Used for seeding; the counter is advanced past the imported id.
        """
        collection = self._collections.get(type(entity))
        if collection is None:
            raise TypeError(f"Unsupported entity type: {type(entity).__name__}")
        with self._lock:
            collection[entity.id] = entity.model_copy(deep=True)
            self.advance_counter(entity.id + 1)

    @staticmethod
    def _copy(entity: Optional[EntityT]) -> Optional[EntityT]:
        return entity.model_copy(deep=True) if entity is not None else None

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    def list_users(self) -> List[User]:
        with self._lock:
            return [u.model_copy(deep=True) for u in self._users.values()]

    def get_user(self, user_id: int) -> Optional[User]:
        with self._lock:
            return self._copy(self._users.get(user_id))

    def get_user_by_username(self, username: str) -> Optional[User]:
        with self._lock:
            for user in self._users.values():
                if user.username == username:
                    return user.model_copy(deep=True)
            return None

    def create_user(self, data: UserCreate) -> User:
        """
        Register a user.

        Raises:
            DuplicateUserError: username or email already taken
        """
        with self._lock:
            for existing in self._users.values():
                if existing.username == data.username:
                    raise DuplicateUserError(f"Username already exists: {data.username}")
                if existing.email == data.email:
                    raise DuplicateUserError(f"Email already registered: {data.email}")

            user = User(id=self._allocate_id(), **data.model_dump())
            self._users[user.id] = user
        logger.info(f"User created: id={user.id} username={user.username}")
        return user.model_copy(deep=True)

    # -------------------------------------------------------------------------
    # Digital twins
    # -------------------------------------------------------------------------

    def list_digital_twins(self, user_id: Optional[int] = None) -> List[DigitalTwin]:
        with self._lock:
            return [
                t.model_copy(deep=True) for t in self._digital_twins.values()
                if user_id is None or t.user_id == user_id
            ]

    def get_digital_twin(self, twin_id: int) -> Optional[DigitalTwin]:
        with self._lock:
            return self._copy(self._digital_twins.get(twin_id))

    def create_digital_twin(self, data: DigitalTwinCreate) -> DigitalTwin:
        """Create a twin. Status starts at ``processing`` and ``modelPath`` is empty."""
        with self._lock:
            now = utcnow()
            twin = DigitalTwin(
                id=self._allocate_id(),
                **data.model_dump(),
                model_path=None,
                created_at=now,
                updated_at=now,
            )
            self._digital_twins[twin.id] = twin
        logger.info(f"Digital twin created: id={twin.id} type={twin.type.value} name={twin.name!r}")
        return twin.model_copy(deep=True)

    def update_digital_twin(self, twin_id: int, patch: DigitalTwinPatch) -> Optional[DigitalTwin]:
        with self._lock:
            twin = self._digital_twins.get(twin_id)
            if twin is None:
                return None
            updated = merge_digital_twin(twin, patch)
            self._digital_twins[twin_id] = updated
            return updated.model_copy(deep=True)

    # -------------------------------------------------------------------------
    # IoT devices
    # -------------------------------------------------------------------------

    def list_iot_devices(self, twin_id: Optional[int] = None) -> List[IotDevice]:
        with self._lock:
            return [
                d.model_copy(deep=True) for d in self._iot_devices.values()
                if twin_id is None or d.twin_id == twin_id
            ]

    def get_iot_device(self, device_id: int) -> Optional[IotDevice]:
        with self._lock:
            return self._copy(self._iot_devices.get(device_id))

    def create_iot_device(self, data: IotDeviceCreate) -> IotDevice:
        """Create a device: connected, no reading yet, ``lastUpdate`` now."""
        with self._lock:
            device = IotDevice(
                id=self._allocate_id(),
                **data.model_dump(),
                last_value=None,
                last_update=utcnow(),
            )
            self._iot_devices[device.id] = device
        logger.info(f"IoT device created: id={device.id} type={device.type} location={device.location!r}")
        return device.model_copy(deep=True)

    def update_iot_device(self, device_id: int, patch: IotDevicePatch) -> Optional[IotDevice]:
        with self._lock:
            device = self._iot_devices.get(device_id)
            if device is None:
                return None
            updated = merge_iot_device(device, patch)
            self._iot_devices[device_id] = updated
            return updated.model_copy(deep=True)

    # -------------------------------------------------------------------------
    # Workflow templates
    # -------------------------------------------------------------------------

    def list_workflow_templates(self, category: Optional[str] = None) -> List[WorkflowTemplate]:
        with self._lock:
            return [
                t.model_copy(deep=True) for t in self._workflow_templates.values()
                if category is None or t.category == category
            ]

    def get_workflow_template(self, template_id: int) -> Optional[WorkflowTemplate]:
        with self._lock:
            return self._copy(self._workflow_templates.get(template_id))

    def create_workflow_template(self, data: WorkflowTemplateCreate) -> WorkflowTemplate:
        """Publish a template with zero rating and downloads."""
        with self._lock:
            template = WorkflowTemplate(
                id=self._allocate_id(),
                **data.model_dump(),
                rating=0.0,
                downloads=0,
                image_path=None,
            )
            self._workflow_templates[template.id] = template
        logger.info(f"Workflow template created: id={template.id} category={template.category!r}")
        return template.model_copy(deep=True)

    # -------------------------------------------------------------------------
    # Projects
    # -------------------------------------------------------------------------

    def list_projects(self, user_id: Optional[int] = None) -> List[Project]:
        with self._lock:
            return [
                p.model_copy(deep=True) for p in self._projects.values()
                if user_id is None or p.user_id == user_id
            ]

    def get_project(self, project_id: int) -> Optional[Project]:
        with self._lock:
            return self._copy(self._projects.get(project_id))

    def create_project(self, data: ProjectCreate) -> Project:
        """Create a project at 0% progress."""
        with self._lock:
            project = Project(
                id=self._allocate_id(),
                **data.model_dump(),
                progress=0,
                status="active",
            )
            self._projects[project.id] = project
        logger.info(f"Project created: id={project.id} twin={project.twin_id}")
        return project.model_copy(deep=True)

    def update_project(self, project_id: int, patch: ProjectPatch) -> Optional[Project]:
        with self._lock:
            project = self._projects.get(project_id)
            if project is None:
                return None
            updated = merge_project(project, patch)
            self._projects[project_id] = updated
            return updated.model_copy(deep=True)

    # -------------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------------

    def stats(self) -> Dict[str, int]:
        """Entity counts per collection."""
        with self._lock:
            return {
                "users": len(self._users),
                "digital_twins": len(self._digital_twins),
                "iot_devices": len(self._iot_devices),
                "workflow_templates": len(self._workflow_templates),
                "projects": len(self._projects),
            }
