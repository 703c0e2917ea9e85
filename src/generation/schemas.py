"""
Generation Service - Result Models and Response Schemas
=========================================================
Typed results returned by the generation adapter, the raw shapes the model is
asked to produce, and the JSON response schemas sent with each request.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from entity_store import CamelModel, TwinType


class Dimensions(CamelModel):
    width: float
    height: float
    depth: float


class TwinSpecifications(CamelModel):
    """Optional hints a caller can attach to a generation prompt."""
    dimensions: Optional[Dict[str, float]] = None
    materials: Optional[List[str]] = None
    features: Optional[List[str]] = None


# =============================================================================
# RAW MODEL OUTPUT
# =============================================================================

class GeneratedTwinSpec(CamelModel):
    """Twin description exactly as the model returns it."""
    name: str
    description: str
    type: str
    dimensions: Dimensions
    materials: List[str]
    features: List[str]


# =============================================================================
# ADAPTER RESULTS
# =============================================================================

class TwinProperties(CamelModel):
    dimensions: Dimensions
    materials: List[str]
    features: List[str]
    specifications: Dict[str, Any] = Field(default_factory=dict)


class ModelGeneration(CamelModel):
    """Progress envelope for the 3D model build that follows synthesis."""
    status: Literal["pending", "processing", "completed"] = "processing"
    estimated_time: int = Field(..., description="Minutes until the model is ready")
    progress: int = Field(0, ge=0, le=100)


class TwinGenerationResult(CamelModel):
    name: str
    description: str
    type: str
    properties: TwinProperties
    model_generation: ModelGeneration


class EstimatedImprovements(CamelModel):
    efficiency: float
    accuracy: float
    performance: float


class OptimizationResult(CamelModel):
    suggestions: List[str]
    optimizations: Dict[str, Any]
    estimated_improvements: EstimatedImprovements


class FileAnalysisResult(CamelModel):
    analysis: str
    extracted_dimensions: Dimensions
    detected_type: Literal["architecture", "industrial", "agriculture", "unknown"]
    processing_recommendations: List[str]


# =============================================================================
# RESPONSE SCHEMAS (Gemini OpenAPI subset)
# =============================================================================

_DIMENSIONS_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "width": {"type": "NUMBER"},
        "height": {"type": "NUMBER"},
        "depth": {"type": "NUMBER"},
    },
    "required": ["width", "height", "depth"],
}

_STRING_LIST_SCHEMA = {"type": "ARRAY", "items": {"type": "STRING"}}

TWIN_RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "name": {"type": "STRING"},
        "description": {"type": "STRING"},
        "type": {"type": "STRING"},
        "dimensions": _DIMENSIONS_SCHEMA,
        "materials": _STRING_LIST_SCHEMA,
        "features": _STRING_LIST_SCHEMA,
    },
    "required": ["name", "description", "type", "dimensions", "materials", "features"],
}

OPTIMIZATION_RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "suggestions": _STRING_LIST_SCHEMA,
        "optimizations": {"type": "OBJECT"},
        "estimatedImprovements": {
            "type": "OBJECT",
            "properties": {
                "efficiency": {"type": "NUMBER"},
                "accuracy": {"type": "NUMBER"},
                "performance": {"type": "NUMBER"},
            },
            "required": ["efficiency", "accuracy", "performance"],
        },
    },
    "required": ["suggestions", "optimizations", "estimatedImprovements"],
}

ANALYSIS_RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "analysis": {"type": "STRING"},
        "extractedDimensions": _DIMENSIONS_SCHEMA,
        "detectedType": {
            "type": "STRING",
            "enum": [t.value for t in TwinType] + ["unknown"],
        },
        "processingRecommendations": _STRING_LIST_SCHEMA,
    },
    "required": ["analysis", "extractedDimensions", "detectedType", "processingRecommendations"],
}
