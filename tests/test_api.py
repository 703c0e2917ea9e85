"""
Test Suite for the HTTP API and WebSocket endpoint
===================================================
Runs the FastAPI app in-process with a mocked generation adapter.
"""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from entity_store import TwinType
from generation import (
    Dimensions,
    FileAnalysisResult,
    GenerationError,
    InvalidGenerationRequest,
    OptimizationResult,
    TwinGenerationResult,
)
from generation.schemas import EstimatedImprovements, ModelGeneration, TwinProperties
from realtime import CONNECTED_MESSAGE
from webapp import create_app


def parse_timestamp(value):
    """Parse an API timestamp; UTC is sent with a ``Z`` suffix."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def generation_result(type="Industrial"):
    return TwinGenerationResult(
        name="Bottling Plant",
        description="Two-line bottling plant",
        type=type,
        properties=TwinProperties(
            dimensions=Dimensions(width=80, height=12, depth=40),
            materials=["steel"],
            features=["conveyors"],
        ),
        model_generation=ModelGeneration(status="processing", estimated_time=9, progress=0),
    )


@pytest.fixture
def client(settings, empty_store, generator, rng):
    app = create_app(settings, empty_store, generator, rng=rng)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def seeded_client(settings, seeded_store, generator, rng):
    app = create_app(settings, seeded_store, generator, rng=rng)
    with TestClient(app) as test_client:
        yield test_client


class TestDigitalTwins:
    """Tests for twin CRUD endpoints."""

    def test_create_twin(self, client):
        response = client.post("/api/digital-twins", json={
            "name": "Warehouse",
            "type": "industrial",
            "properties": {"floors": 1},
        })

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "processing"
        assert body["modelPath"] is None
        assert body["userId"] == 1
        assert body["properties"] == {"floors": 1}

    def test_create_twin_schema_violation(self, client, empty_store):
        response = client.post("/api/digital-twins", json={"type": "industrial"})

        assert response.status_code == 400
        assert "name" in response.json()["error"]
        assert empty_store.list_digital_twins() == []

    def test_create_twin_unknown_type(self, client):
        response = client.post("/api/digital-twins", json={"name": "Moonbase", "type": "lunar"})
        assert response.status_code == 400

    def test_get_twin(self, client):
        created = client.post("/api/digital-twins", json={"name": "Barn", "type": "agriculture"}).json()

        response = client.get(f"/api/digital-twins/{created['id']}")

        assert response.status_code == 200
        assert response.json() == created

    def test_get_missing_twin(self, client):
        response = client.get("/api/digital-twins/999")
        assert response.status_code == 404
        assert response.json() == {"error": "Digital twin not found"}

    def test_list_twins_for_default_user(self, seeded_client):
        response = seeded_client.get("/api/digital-twins")

        assert response.status_code == 200
        assert [t["name"] for t in response.json()] == [
            "Downtown Office Complex",
            "Smart Factory Line",
            "Precision Agriculture Farm",
        ]

    def test_patch_twin_preserves_other_fields(self, seeded_client):
        before = seeded_client.get("/api/digital-twins/2").json()

        response = seeded_client.patch("/api/digital-twins/2", json={"status": "inactive"})

        assert response.status_code == 200
        after = response.json()
        assert after["status"] == "inactive"
        for key in ("name", "description", "type", "properties", "modelPath", "createdAt"):
            assert after[key] == before[key]
        assert parse_timestamp(after["updatedAt"]) >= parse_timestamp(before["updatedAt"])

    def test_patch_missing_twin_leaves_store_unchanged(self, client, empty_store):
        client.post("/api/digital-twins", json={"name": "Barn", "type": "agriculture"})
        before = empty_store.list_digital_twins()

        response = client.patch("/api/digital-twins/999", json={"name": "Ghost"})

        assert response.status_code == 404
        assert empty_store.list_digital_twins() == before

    def test_patch_cannot_clear_required_field(self, seeded_client):
        response = seeded_client.patch("/api/digital-twins/1", json={"name": None})

        assert response.status_code == 400
        assert seeded_client.get("/api/digital-twins/1").json()["name"] == "Downtown Office Complex"


class TestGeneration:
    """Tests for the AI-backed endpoints."""

    @pytest.mark.parametrize("payload", [
        {"type": "industrial"},
        {"prompt": "a bottling plant"},
        {"prompt": "", "type": "industrial"},
        {},
    ])
    def test_generate_requires_prompt_and_type(self, client, generator, empty_store, payload):
        response = client.post("/api/ai/generate-twin", json=payload)

        assert response.status_code == 400
        assert response.json() == {"error": "Prompt and type are required"}
        generator.generate_twin.assert_not_awaited()
        assert empty_store.stats()["digital_twins"] == 0

    def test_generate_persists_twin(self, client, generator, empty_store):
        generator.generate_twin.return_value = generation_result()

        response = client.post("/api/ai/generate-twin", json={
            "prompt": "a bottling plant",
            "type": "industrial",
            "specifications": {"materials": ["steel"]},
        })

        assert response.status_code == 200
        body = response.json()
        assert body["modelGeneration"]["estimatedTime"] == 9
        assert body["properties"]["dimensions"] == {"width": 80, "height": 12, "depth": 40}

        twin = empty_store.get_digital_twin(body["id"])
        assert twin.name == "Bottling Plant"
        assert twin.type == TwinType.INDUSTRIAL
        assert twin.user_id == 1
        assert twin.properties["materials"] == ["steel"]

    def test_generate_falls_back_to_requested_type(self, client, generator, empty_store):
        generator.generate_twin.return_value = generation_result(type="manufacturing plant")

        body = client.post("/api/ai/generate-twin", json={"prompt": "p", "type": "industrial"}).json()

        assert empty_store.get_digital_twin(body["id"]).type == TwinType.INDUSTRIAL

    def test_generate_rejected_by_adapter(self, client, generator):
        generator.generate_twin.side_effect = InvalidGenerationRequest("Unknown twin type: lunar")

        response = client.post("/api/ai/generate-twin", json={"prompt": "p", "type": "lunar"})

        assert response.status_code == 400

    def test_generate_failure_writes_nothing(self, client, generator, empty_store):
        generator.generate_twin.side_effect = GenerationError("Failed to generate digital twin: timeout")

        response = client.post("/api/ai/generate-twin", json={"prompt": "p", "type": "industrial"})

        assert response.status_code == 500
        assert "timeout" in response.json()["error"]
        assert empty_store.stats()["digital_twins"] == 0

    def test_optimize(self, client, generator):
        generator.optimize_twin.return_value = OptimizationResult(
            suggestions=["Stagger shifts"],
            optimizations={},
            estimated_improvements=EstimatedImprovements(efficiency=5, accuracy=1, performance=2),
        )

        response = client.post("/api/ai/optimize-twin/2", json={"useCase": "throughput"})

        assert response.status_code == 200
        assert response.json()["estimatedImprovements"]["efficiency"] == 5
        generator.optimize_twin.assert_awaited_once_with(2, "throughput")

    def test_optimize_failure(self, client, generator):
        generator.optimize_twin.side_effect = GenerationError("Failed to optimize digital twin: boom")

        response = client.post("/api/ai/optimize-twin/2", json={"useCase": "throughput"})

        assert response.status_code == 500


class TestUpload:
    """Tests for file analysis uploads."""

    def test_no_file(self, client, generator):
        response = client.post("/api/upload/analyze")

        assert response.status_code == 400
        assert response.json() == {"error": "No file uploaded"}
        generator.analyze_file.assert_not_awaited()

    def test_analyze_upload(self, client, generator):
        generator.analyze_file.return_value = FileAnalysisResult(
            analysis="Site plan",
            extracted_dimensions=Dimensions(width=10, height=3, depth=8),
            detected_type="architecture",
            processing_recommendations=["Trace walls"],
        )

        response = client.post(
            "/api/upload/analyze",
            files={"file": ("plan.pdf", b"%PDF-1.7 drawing", "application/pdf")},
        )

        assert response.status_code == 200
        assert response.json()["detectedType"] == "architecture"
        generator.analyze_file.assert_awaited_once_with(b"%PDF-1.7 drawing", "plan.pdf", "application/pdf")

    def test_oversized_upload_rejected(self, settings, empty_store, generator):
        settings.upload.max_bytes = 16
        app = create_app(settings, empty_store, generator)

        with TestClient(app) as client:
            response = client.post(
                "/api/upload/analyze",
                files={"file": ("big.bin", b"x" * 17, "application/octet-stream")},
            )

        assert response.status_code == 413
        generator.analyze_file.assert_not_awaited()

    def test_adapter_failure(self, client, generator):
        generator.analyze_file.side_effect = GenerationError("Failed to analyze file: boom")

        response = client.post(
            "/api/upload/analyze",
            files={"file": ("plan.pdf", b"data", "application/pdf")},
        )

        assert response.status_code == 500


class TestIotDevices:
    """Tests for device endpoints."""

    def test_create_device_defaults(self, client):
        response = client.post("/api/iot-devices", json={
            "name": "Temp A",
            "type": "temperature",
            "location": "Roof",
            "unit": "°C",
        })

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "connected"
        assert body["lastValue"] is None
        assert body["unit"] == "°C"
        assert body["lastUpdate"].endswith("Z")
        last_update = parse_timestamp(body["lastUpdate"])
        assert datetime.now(timezone.utc) - last_update < timedelta(minutes=1)

    def test_create_device_missing_location(self, client):
        response = client.post("/api/iot-devices", json={"name": "Temp A", "type": "temperature"})
        assert response.status_code == 400

    def test_list_filtered_by_twin(self, seeded_client):
        response = seeded_client.get("/api/iot-devices", params={"twinId": 2})

        assert response.status_code == 200
        assert [d["name"] for d in response.json()] == ["Vibration Sensor"]
        assert len(seeded_client.get("/api/iot-devices").json()) == 4

    def test_get_device(self, seeded_client):
        assert seeded_client.get("/api/iot-devices/3").json()["unit"] == "kW"
        assert seeded_client.get("/api/iot-devices/42").status_code == 404

    def test_patch_device(self, seeded_client):
        response = seeded_client.patch("/api/iot-devices/4", json={"status": "connected", "lastValue": 12.5})

        assert response.status_code == 200
        body = response.json()
        assert body["lastValue"] == 12.5
        assert body["location"] == "Machine Tool #3"

    def test_patch_missing_device(self, client):
        assert client.patch("/api/iot-devices/5", json={"lastValue": 1}).status_code == 404

    def test_patch_device_invalid_status(self, seeded_client):
        assert seeded_client.patch("/api/iot-devices/1", json={"status": "asleep"}).status_code == 400


class TestTemplatesProjectsUsers:
    """Tests for marketplace, project and user endpoints."""

    def test_templates_by_category(self, seeded_client):
        response = seeded_client.get("/api/workflow-templates", params={"category": "Agriculture"})

        assert [t["name"] for t in response.json()] == ["Precision Agriculture"]
        assert len(seeded_client.get("/api/workflow-templates").json()) == 3

    def test_get_template(self, seeded_client):
        assert seeded_client.get("/api/workflow-templates/2").json()["price"] == 49
        missing = seeded_client.get("/api/workflow-templates/77")
        assert missing.status_code == 404
        assert missing.json() == {"error": "Template not found"}

    def test_publish_template(self, client):
        response = client.post("/api/workflow-templates", json={
            "name": "Greenhouse",
            "category": "Agriculture",
            "price": 10,
            "template": {"nodes": [{"id": "n1"}], "connections": []},
        })

        assert response.status_code == 201
        assert response.json()["downloads"] == 0

    def test_negative_price_rejected(self, client):
        response = client.post("/api/workflow-templates", json={"name": "G", "category": "A", "price": -1})
        assert response.status_code == 400

    def test_projects(self, client):
        created = client.post("/api/projects", json={"name": "Retrofit", "type": "Architecture", "twinId": 7})
        assert created.status_code == 201
        project = created.json()
        assert project["progress"] == 0

        updated = client.patch(f"/api/projects/{project['id']}", json={"progress": 40})
        assert updated.json()["progress"] == 40
        assert updated.json()["twinId"] == 7

        assert client.patch(f"/api/projects/{project['id']}", json={"progress": 140}).status_code == 400
        assert [p["id"] for p in client.get("/api/projects").json()] == [project["id"]]
        assert client.get("/api/projects/999").status_code == 404

    def test_register_user_hides_password(self, client):
        response = client.post("/api/users", json={
            "username": "ada",
            "password": "secret",
            "email": "ada@example.com",
        })

        assert response.status_code == 201
        body = response.json()
        assert "password" not in body
        assert client.get(f"/api/users/{body['id']}").json()["username"] == "ada"

    def test_duplicate_user(self, client):
        payload = {"username": "ada", "password": "secret", "email": "ada@example.com"}
        client.post("/api/users", json=payload)

        response = client.post("/api/users", json=payload)

        assert response.status_code == 409

    def test_missing_user(self, client):
        assert client.get("/api/users/3").status_code == 404


class TestDashboardAndSimulation:
    """Tests for aggregate and synthetic endpoints."""

    def test_dashboard_stats(self, seeded_client):
        stats = seeded_client.get("/api/dashboard/stats").json()

        assert stats["activeTwins"] == 3
        assert stats["connectedDevices"] == 3
        assert stats["totalDevices"] == 4
        assert stats["activeProjects"] == 3
        assert stats["dataPoints"] == "3.0M"

    def test_dashboard_stats_empty_store(self, client):
        stats = client.get("/api/dashboard/stats").json()
        assert stats["activeTwins"] == 0
        assert stats["dataPoints"] == "0.0M"

    def test_simulation_metrics(self, seeded_client):
        metrics = seeded_client.get("/api/simulation/2/metrics").json()

        production = int(metrics["productionRate"].split()[0])
        assert 700 <= production < 900
        assert metrics["productionRate"].endswith(" units/hr")
        assert 85 <= int(metrics["energyEfficiency"].rstrip("%")) < 95
        assert 90 <= int(metrics["equipmentHealth"].rstrip("%")) < 100
        assert 95 <= int(metrics["safetyScore"].rstrip("%")) < 100

    def test_simulation_metrics_missing_twin(self, client):
        assert client.get("/api/simulation/5/metrics").status_code == 404

    def test_non_numeric_id(self, client):
        assert client.get("/api/digital-twins/abc").status_code == 400


class TestWebSocket:
    """Tests for the /ws broadcast channel endpoint."""

    def test_connect_and_echo(self, client):
        with client.websocket_connect("/ws") as ws:
            assert ws.receive_json() == {"type": "connected", "message": CONNECTED_MESSAGE}

            ws.send_json({"action": "subscribe", "twinId": 1})
            assert ws.receive_json() == {"type": "echo", "data": {"action": "subscribe", "twinId": 1}}

    def test_malformed_frame_ignored(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()

            ws.send_text("not json")
            ws.send_json({"n": 2})

            assert ws.receive_json() == {"type": "echo", "data": {"n": 2}}

    def test_client_count_tracks_connections(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            assert client.get("/api/health").json()["clients"] == 1
