"""
Demonstration data set loaded at startup so the dashboard is not empty.
"""

from __future__ import annotations

from datetime import timedelta

from loguru import logger

from .memory_store import EntityStore
from .models import (
    DeviceStatus,
    DigitalTwin,
    IotDevice,
    Project,
    TwinStatus,
    TwinType,
    User,
    WorkflowTemplate,
    utcnow,
)

# Seeded ids stay below this; created entities start here.
FIRST_DYNAMIC_ID = 10


def seed_sample_data(store: EntityStore) -> None:
    """Populate ``store`` with the demo user, twins, devices, templates and projects."""
    now = utcnow()

    store.import_entity(User(
        id=1,
        username="john_smith",
        password="hashed_password",
        email="john.smith@example.com",
        role="engineer",
        created_at=now,
    ))

    twins = [
        DigitalTwin(
            id=1,
            name="Downtown Office Complex",
            description="Modern office building with smart systems",
            type=TwinType.ARCHITECTURE,
            user_id=1,
            status=TwinStatus.ACTIVE,
            properties={
                "dimensions": {"width": 45, "height": 75, "depth": 30},
                "floors": 15,
                "materials": ["glass", "steel", "concrete"],
            },
            model_path="/models/office-complex.glb",
            created_at=now,
            updated_at=now,
        ),
        DigitalTwin(
            id=2,
            name="Smart Factory Line",
            description="Industrial manufacturing facility",
            type=TwinType.INDUSTRIAL,
            user_id=1,
            status=TwinStatus.ACTIVE,
            properties={
                "dimensions": {"width": 120, "height": 8, "depth": 80},
                "machinery": ["robots", "conveyors", "sensors"],
            },
            model_path="/models/factory.glb",
            created_at=now,
            updated_at=now,
        ),
        DigitalTwin(
            id=3,
            name="Precision Agriculture Farm",
            description="Smart farming with IoT sensors",
            type=TwinType.AGRICULTURE,
            user_id=1,
            status=TwinStatus.ACTIVE,
            properties={
                "dimensions": {"width": 500, "height": 2, "depth": 300},
                "crops": ["wheat", "corn", "soybeans"],
            },
            model_path="/models/farm.glb",
            created_at=now,
            updated_at=now,
        ),
    ]

    devices = [
        IotDevice(
            id=1, name="Temperature Sensor #1", type="temperature",
            location="Building Floor 12", twin_id=1, status=DeviceStatus.CONNECTED,
            last_value=23.5, unit="°C", last_update=now - timedelta(minutes=2),
        ),
        IotDevice(
            id=2, name="Humidity Monitor", type="humidity",
            location="HVAC System", twin_id=1, status=DeviceStatus.CONNECTED,
            last_value=45.0, unit="%", last_update=now - timedelta(minutes=1),
        ),
        IotDevice(
            id=3, name="Power Monitor", type="power",
            location="Main Electrical Panel", twin_id=1, status=DeviceStatus.CONNECTED,
            last_value=2.3, unit="kW", last_update=now - timedelta(seconds=30),
        ),
        IotDevice(
            id=4, name="Vibration Sensor", type="vibration",
            location="Machine Tool #3", twin_id=2, status=DeviceStatus.DISCONNECTED,
            last_value=None, unit="Hz", last_update=now - timedelta(hours=5),
        ),
    ]

    empty_graph = {"nodes": [], "connections": []}
    templates = [
        WorkflowTemplate(
            id=1,
            name="Modern Office Complex",
            category="Architecture",
            description=(
                "Complete digital twin template for modern office buildings "
                "with HVAC, lighting, and security systems."
            ),
            price=0, rating=4.9, downloads=2300,
            image_path="/templates/office-complex.jpg",
            template=empty_graph, created_at=now,
        ),
        WorkflowTemplate(
            id=2,
            name="Smart Factory Template",
            category="Industrial",
            description=(
                "Industrial manufacturing template with IoT sensors, "
                "predictive maintenance, and production optimization."
            ),
            price=49, rating=4.7, downloads=1800,
            image_path="/templates/smart-factory.jpg",
            template=empty_graph, created_at=now,
        ),
        WorkflowTemplate(
            id=3,
            name="Precision Agriculture",
            category="Agriculture",
            description=(
                "Comprehensive farm management template with crop monitoring, "
                "irrigation control, and yield prediction."
            ),
            price=29, rating=4.8, downloads=956,
            image_path="/templates/agriculture.jpg",
            template=empty_graph, created_at=now,
        ),
    ]

    projects = [
        Project(
            id=1, name="Downtown Office Complex", type="Architecture",
            user_id=1, twin_id=1, progress=75, status="active",
            last_updated=now - timedelta(hours=2),
        ),
        Project(
            id=2, name="Smart Factory Line", type="Industrial",
            user_id=1, twin_id=2, progress=45, status="active",
            last_updated=now - timedelta(days=1),
        ),
        Project(
            id=3, name="Precision Agriculture Farm", type="Agriculture",
            user_id=1, twin_id=3, progress=90, status="active",
            last_updated=now - timedelta(hours=3),
        ),
    ]

    for entity in (*twins, *devices, *templates, *projects):
        store.import_entity(entity)

    store.advance_counter(FIRST_DYNAMIC_ID)
    logger.info(f"Sample data loaded: {store.stats()}")
