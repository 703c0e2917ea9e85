"""
Digital Twin Platform - REST/WebSocket Server
==============================================
HTTP API over the entity store and the generation adapter, plus the ``/ws``
broadcast channel feeding live dashboard widgets.

Handlers are stateless: each performs at most one store operation, or one
adapter call followed by one store write. Failures map to distinct statuses:

- 400: malformed or incomplete input
- 404: entity not found
- 409: duplicate user
- 413: upload over the size ceiling
- 500: generation failure or unexpected error
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import List, Optional

import numpy as np
from fastapi import FastAPI, File, HTTPException, Query, Request, UploadFile, WebSocket
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from entity_store import (
    CamelModel,
    DigitalTwin,
    DigitalTwinCreate,
    DigitalTwinPatch,
    DuplicateUserError,
    EntityStore,
    IotDevice,
    IotDeviceCreate,
    IotDevicePatch,
    Project,
    ProjectCreate,
    ProjectPatch,
    TwinType,
    UserCreate,
    UserPublic,
    WorkflowTemplate,
    WorkflowTemplateCreate,
)
from generation import (
    FileAnalysisResult,
    GenerationError,
    GenerationService,
    InvalidGenerationRequest,
    OptimizationResult,
    TwinSpecifications,
)
from realtime import BroadcastChannel, uniform_sampler

from . import __version__
from .settings import Settings


# =============================================================================
# REQUEST MODELS
# =============================================================================

class GenerateTwinRequest(CamelModel):
    # Optional so a missing field yields the dedicated 400 message
    prompt: Optional[str] = None
    type: Optional[str] = None
    specifications: Optional[TwinSpecifications] = None


class OptimizeTwinRequest(CamelModel):
    use_case: Optional[str] = Field(None, description="What the twin should be optimized for")


def _describe_validation(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "Invalid request"


def _not_found(what: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"{what} not found")


# =============================================================================
# APPLICATION FACTORY
# =============================================================================

def create_app(
    settings: Settings,
    store: EntityStore,
    generator: GenerationService,
    channel: Optional[BroadcastChannel] = None,
    rng: Optional[np.random.Generator] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Loaded settings
        store: Entity store owned by this process
        generator: Generation adapter
        channel: Broadcast channel (built from settings when omitted)
        rng: Random generator for synthetic simulation metrics

    Returns:
        Configured application; the broadcast loop runs inside its lifespan
    """
    rt = settings.realtime
    channel = channel or BroadcastChannel(
        interval_s=rt.broadcast_interval_s,
        sampler=uniform_sampler(rt.device_ids, rt.value_min, rt.value_max),
    )
    rng = rng or np.random.default_rng()
    default_user_id = settings.store.default_user_id
    max_upload_bytes = settings.upload.max_bytes

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        channel.start()
        logger.info("Digital twin platform server started")
        yield
        await channel.stop()
        await generator.aclose()
        logger.info("Digital twin platform server stopped")

    app = FastAPI(
        title="Digital Twin Platform",
        description="Create, visualize and monitor digital twins of buildings, factories and farms",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.generator = generator
    app.state.channel = channel

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -------------------------------------------------------------------------
    # Error mapping
    # -------------------------------------------------------------------------

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": _describe_validation(exc)})

    @app.exception_handler(InvalidGenerationRequest)
    async def invalid_generation(request: Request, exc: InvalidGenerationRequest):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(DuplicateUserError)
    async def duplicate_user(request: Request, exc: DuplicateUserError):
        return JSONResponse(status_code=409, content={"error": str(exc)})

    @app.exception_handler(GenerationError)
    async def generation_failed(request: Request, exc: GenerationError):
        return JSONResponse(status_code=500, content={"error": str(exc)})

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"error": str(exc)})

    # -------------------------------------------------------------------------
    # Dashboard & projects
    # -------------------------------------------------------------------------

    @app.get("/api/health")
    async def health():
        """Liveness probe."""
        return {
            "status": "ok",
            "clients": len(channel.clients),
            "entities": store.stats(),
        }

    @app.get("/api/dashboard/stats")
    async def dashboard_stats():
        """Aggregate counts for the dashboard header cards."""
        twins = store.list_digital_twins(default_user_id)
        devices = store.list_iot_devices()
        projects = store.list_projects(default_user_id)

        connected = sum(1 for d in devices if d.status == "connected")
        data_points = sum(1 for d in devices if d.last_value is not None) * 1000

        return {
            "activeTwins": len(twins),
            "activeTwinsGrowth": "+12%",
            "connectedDevices": connected,
            "totalDevices": len(devices),
            "activeProjects": sum(1 for p in projects if p.status == "active"),
            "dataPoints": f"{data_points / 1000:.1f}M",
            "dataPointsGrowth": "+8%",
            "processingTime": "3.2h",
            "processingTimeChange": "-24%",
            "accuracyRate": "98.7%",
            "accuracyRateChange": "+1.2%",
        }

    @app.get("/api/projects", response_model=List[Project])
    async def list_projects():
        return store.list_projects(default_user_id)

    @app.get("/api/projects/{project_id}", response_model=Project)
    async def get_project(project_id: int):
        project = store.get_project(project_id)
        if project is None:
            raise _not_found("Project")
        return project

    @app.post("/api/projects", response_model=Project, status_code=201)
    async def create_project(payload: ProjectCreate):
        if payload.user_id is None:
            payload.user_id = default_user_id
        return store.create_project(payload)

    @app.patch("/api/projects/{project_id}", response_model=Project)
    async def update_project(project_id: int, patch: ProjectPatch):
        project = store.update_project(project_id, patch)
        if project is None:
            raise _not_found("Project")
        return project

    # -------------------------------------------------------------------------
    # Digital twins
    # -------------------------------------------------------------------------

    @app.get("/api/digital-twins", response_model=List[DigitalTwin])
    async def list_digital_twins():
        return store.list_digital_twins(default_user_id)

    @app.get("/api/digital-twins/{twin_id}", response_model=DigitalTwin)
    async def get_digital_twin(twin_id: int):
        twin = store.get_digital_twin(twin_id)
        if twin is None:
            raise _not_found("Digital twin")
        return twin

    @app.post("/api/digital-twins", response_model=DigitalTwin, status_code=201)
    async def create_digital_twin(payload: DigitalTwinCreate):
        if payload.user_id is None:
            payload.user_id = default_user_id
        return store.create_digital_twin(payload)

    @app.patch("/api/digital-twins/{twin_id}", response_model=DigitalTwin)
    async def update_digital_twin(twin_id: int, patch: DigitalTwinPatch):
        twin = store.update_digital_twin(twin_id, patch)
        if twin is None:
            raise _not_found("Digital twin")
        return twin

    # -------------------------------------------------------------------------
    # AI generation
    # -------------------------------------------------------------------------

    @app.post("/api/ai/generate-twin")
    async def generate_twin(payload: GenerateTwinRequest):
        """Synthesize a twin with the generation adapter and persist it."""
        if not payload.prompt or not payload.type:
            raise HTTPException(status_code=400, detail="Prompt and type are required")

        logger.info(f"Generating {payload.type} twin from prompt ({len(payload.prompt)} chars)")
        result = await generator.generate_twin(payload.prompt, payload.type, payload.specifications)

        twin = store.create_digital_twin(DigitalTwinCreate(
            name=result.name,
            description=result.description,
            type=TwinType.coerce(result.type, fallback=TwinType(payload.type)),
            user_id=default_user_id,
            properties=result.properties.model_dump(mode="json", by_alias=True),
        ))

        body = result.model_dump(mode="json", by_alias=True)
        body["id"] = twin.id
        return body

    @app.post("/api/ai/optimize-twin/{twin_id}", response_model=OptimizationResult)
    async def optimize_twin(twin_id: int, payload: OptimizeTwinRequest):
        return await generator.optimize_twin(twin_id, payload.use_case)

    @app.post("/api/upload/analyze", response_model=FileAnalysisResult)
    async def analyze_upload(file: Optional[UploadFile] = File(None)):
        """Analyze an uploaded drawing or CAD file (max 50 MB by default)."""
        if file is None:
            raise HTTPException(status_code=400, detail="No file uploaded")

        data = await file.read(max_upload_bytes + 1)
        if len(data) > max_upload_bytes:
            raise HTTPException(
                status_code=413,
                detail=f"File exceeds the {max_upload_bytes // (1024 * 1024)}MB upload limit",
            )

        logger.info(f"Analyzing upload {file.filename!r} ({len(data)} bytes)")
        return await generator.analyze_file(
            data,
            file.filename or "upload",
            file.content_type or "application/octet-stream",
        )

    # -------------------------------------------------------------------------
    # IoT devices
    # -------------------------------------------------------------------------

    @app.get("/api/iot-devices", response_model=List[IotDevice])
    async def list_iot_devices(twin_id: Optional[int] = Query(None, alias="twinId")):
        return store.list_iot_devices(twin_id)

    @app.get("/api/iot-devices/{device_id}", response_model=IotDevice)
    async def get_iot_device(device_id: int):
        device = store.get_iot_device(device_id)
        if device is None:
            raise _not_found("IoT device")
        return device

    @app.post("/api/iot-devices", response_model=IotDevice, status_code=201)
    async def create_iot_device(payload: IotDeviceCreate):
        return store.create_iot_device(payload)

    @app.patch("/api/iot-devices/{device_id}", response_model=IotDevice)
    async def update_iot_device(device_id: int, patch: IotDevicePatch):
        device = store.update_iot_device(device_id, patch)
        if device is None:
            raise _not_found("IoT device")
        return device

    # -------------------------------------------------------------------------
    # Workflow templates
    # -------------------------------------------------------------------------

    @app.get("/api/workflow-templates", response_model=List[WorkflowTemplate])
    async def list_workflow_templates(category: Optional[str] = None):
        return store.list_workflow_templates(category)

    @app.get("/api/workflow-templates/{template_id}", response_model=WorkflowTemplate)
    async def get_workflow_template(template_id: int):
        template = store.get_workflow_template(template_id)
        if template is None:
            raise _not_found("Template")
        return template

    @app.post("/api/workflow-templates", response_model=WorkflowTemplate, status_code=201)
    async def create_workflow_template(payload: WorkflowTemplateCreate):
        return store.create_workflow_template(payload)

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    @app.post("/api/users", response_model=UserPublic, status_code=201)
    async def register_user(payload: UserCreate):
        return store.create_user(payload).model_dump()

    @app.get("/api/users/{user_id}", response_model=UserPublic)
    async def get_user(user_id: int):
        user = store.get_user(user_id)
        if user is None:
            raise _not_found("User")
        return user.model_dump()

    # -------------------------------------------------------------------------
    # Simulation
    # -------------------------------------------------------------------------

    @app.get("/api/simulation/{twin_id}/metrics")
    async def simulation_metrics(twin_id: int):
        """Synthetic live metrics for a twin."""
        if store.get_digital_twin(twin_id) is None:
            raise _not_found("Digital twin")

        return {
            "productionRate": f"{int(rng.integers(700, 900))} units/hr",
            "energyEfficiency": f"{int(rng.integers(85, 95))}%",
            "equipmentHealth": f"{int(rng.integers(90, 100))}%",
            "safetyScore": f"{int(rng.integers(95, 100))}%",
        }

    # -------------------------------------------------------------------------
    # Realtime
    # -------------------------------------------------------------------------

    @app.websocket(rt.path)
    async def websocket_endpoint(websocket: WebSocket):
        """Broadcast channel: ack, echo, and periodic ``iot_update`` pushes."""
        await channel.serve(websocket)

    return app
