"""
Generation Service Adapter
===========================
Single boundary to the hosted generative model (Google Gemini).

Three typed operations are exposed:
- generate_twin: synthesize a twin description from a free-text prompt
- optimize_twin: suggest optimizations for a twin and a use case
- analyze_file:  classify an uploaded drawing/CAD file from its metadata

Every request carries a strict JSON response schema. Whatever goes wrong in
the external call (transport error, HTTP status, malformed or non-conforming
JSON) surfaces as one GenerationError chained to the underlying cause. No
retries are attempted.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional, Type, TypeVar

import httpx
import numpy as np
from loguru import logger
from pydantic import BaseModel, ValidationError

from entity_store import TwinType

from .schemas import (
    ANALYSIS_RESPONSE_SCHEMA,
    OPTIMIZATION_RESPONSE_SCHEMA,
    TWIN_RESPONSE_SCHEMA,
    FileAnalysisResult,
    GeneratedTwinSpec,
    ModelGeneration,
    OptimizationResult,
    TwinGenerationResult,
    TwinProperties,
    TwinSpecifications,
)

ResultT = TypeVar("ResultT", bound=BaseModel)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_TWIN_MODEL = "gemini-2.5-flash"
DEFAULT_ANALYSIS_MODEL = "gemini-2.5-pro"


class InvalidGenerationRequest(ValueError):
    """Request rejected before any external call was made."""


class GenerationError(RuntimeError):
    """The external model call failed; ``__cause__`` holds the reason."""


# =============================================================================
# PROMPTS
# =============================================================================

TWIN_SYSTEM_PROMPT = """You are an expert digital twin architect. Based on the user's prompt, generate a comprehensive digital twin specification.

Respond with JSON in this exact format:
{
  "name": "string",
  "description": "string",
  "type": "string",
  "dimensions": {"width": number, "height": number, "depth": number},
  "materials": ["string"],
  "features": ["string"]
}"""

OPTIMIZATION_SYSTEM_PROMPT = """You are an optimization expert for digital twins. Analyze the use case and provide specific optimization suggestions, technical optimizations, and estimated performance improvements.

Respond with JSON in this format:
{
  "suggestions": ["string"],
  "optimizations": {},
  "estimatedImprovements": {"efficiency": number, "accuracy": number, "performance": number}
}"""

ANALYSIS_SYSTEM_PROMPT = """You are a technical file analyzer for digital twin creation. Based on the file information provided, analyze the file and provide insights about dimensions, type, and processing recommendations.

Respond with JSON in this format:
{
  "analysis": "string",
  "extractedDimensions": {"width": number, "height": number, "depth": number},
  "detectedType": "architecture|industrial|agriculture|unknown",
  "processingRecommendations": ["string"]
}"""


def _extract_text(body: Dict[str, Any]) -> str:
    """Pull the generated text out of a generateContent response."""
    candidates = body.get("candidates") or []
    if not candidates:
        raise ValueError("response contained no candidates")
    parts = candidates[0].get("content", {}).get("parts") or []
    text = "".join(part.get("text", "") for part in parts)
    if not text:
        raise ValueError("response contained no text")
    return text


class GenerationService:
    """
    Adapter around the Gemini ``generateContent`` REST endpoint.

    Callers only depend on the three typed operations; model names, prompt
    text and response schemas stay inside this class.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        twin_model: str = DEFAULT_TWIN_MODEL,
        analysis_model: str = DEFAULT_ANALYSIS_MODEL,
        timeout_s: float = 120.0,
        client: Optional[httpx.AsyncClient] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        """
        Initialize the adapter.

        Args:
            api_key: Gemini API key
            base_url: API root, without trailing slash
            twin_model: Model used for twin synthesis
            analysis_model: Model used for optimization and file analysis
            timeout_s: Transport timeout for each request
            client: Pre-built HTTP client (tests inject a mock transport)
            rng: Random generator for the estimated build time
        """
        self.base_url = base_url.rstrip("/")
        self.twin_model = twin_model
        self.analysis_model = analysis_model
        self._api_key = api_key
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        self._rng = rng or np.random.default_rng()

    async def aclose(self) -> None:
        """Close the HTTP client if this adapter created it."""
        if self._owns_client:
            await self._client.aclose()

    async def _generate(
        self,
        operation: str,
        model: str,
        system_prompt: str,
        user_prompt: str,
        response_schema: Dict[str, Any],
        result_type: Type[ResultT],
    ) -> ResultT:
        """Run one schema-constrained generation and validate the result."""
        payload = {
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "contents": [{"role": "user", "parts": [{"text": user_prompt}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": response_schema,
            },
        }
        url = f"{self.base_url}/models/{model}:generateContent"

        logger.debug(f"Generation request [{operation}] model={model}")
        try:
            response = await self._client.post(
                url,
                json=payload,
                headers={"x-goog-api-key": self._api_key},
            )
            response.raise_for_status()
            generated = json.loads(_extract_text(response.json()))
            return result_type.model_validate(generated)
        except (httpx.HTTPError, ValidationError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"Generation failed [{operation}]: {e}")
            raise GenerationError(f"Failed to {operation}: {e}") from e

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def generate_twin(
        self,
        prompt: Optional[str],
        type: Optional[str],
        specifications: Optional[TwinSpecifications] = None,
    ) -> TwinGenerationResult:
        """
        Synthesize a digital twin description.

        Args:
            prompt: Free-text description of the asset
            type: One of architecture, industrial, agriculture
            specifications: Optional dimension/material/feature hints

        Returns:
            Twin description plus a model-generation envelope

        Raises:
            InvalidGenerationRequest: prompt or type missing, or type unknown
            GenerationError: the external call failed
        """
        if not prompt or not str(prompt).strip() or not type:
            raise InvalidGenerationRequest("Prompt and type are required")
        try:
            twin_type = TwinType(type)
        except ValueError:
            raise InvalidGenerationRequest(f"Unknown twin type: {type}") from None

        user_prompt = f"Generate a digital twin for: {prompt}\n\nType: {twin_type.value}\n"
        if specifications is not None:
            hints = specifications.model_dump(by_alias=True, exclude_none=True)
            user_prompt += f"Additional specifications: {json.dumps(hints)}\n"
        user_prompt += (
            "\nMake sure the dimensions are realistic and appropriate for the "
            "type of structure/system requested."
        )

        spec = await self._generate(
            "generate digital twin",
            self.twin_model,
            TWIN_SYSTEM_PROMPT,
            user_prompt,
            TWIN_RESPONSE_SCHEMA,
            GeneratedTwinSpec,
        )

        return TwinGenerationResult(
            name=spec.name,
            description=spec.description,
            type=spec.type,
            properties=TwinProperties(
                dimensions=spec.dimensions,
                materials=spec.materials,
                features=spec.features,
                specifications={},
            ),
            model_generation=ModelGeneration(
                status="processing",
                estimated_time=int(self._rng.integers(5, 15)),
                progress=0,
            ),
        )

    async def optimize_twin(self, twin_id: int, use_case: Optional[str]) -> OptimizationResult:
        """
        Suggest optimizations of a twin for a use case.

        Raises:
            InvalidGenerationRequest: use case missing
            GenerationError: the external call failed
        """
        if not use_case or not use_case.strip():
            raise InvalidGenerationRequest("Use case is required")

        return await self._generate(
            "optimize digital twin",
            self.analysis_model,
            OPTIMIZATION_SYSTEM_PROMPT,
            f"Optimize digital twin #{twin_id} for use case: {use_case}",
            OPTIMIZATION_RESPONSE_SCHEMA,
            OptimizationResult,
        )

    async def analyze_file(self, data: bytes, file_name: str, file_type: str) -> FileAnalysisResult:
        """
        Analyze an uploaded file for twin creation.

        Only the name, MIME type and size are described to the model; the
        upload size ceiling is enforced by the HTTP layer.
        """
        user_prompt = (
            "Analyze uploaded file:\n"
            f"- File name: {file_name}\n"
            f"- File type: {file_type}\n"
            f"- File size: {len(data)} bytes\n\n"
            "Provide analysis and recommendations for digital twin creation."
        )
        return await self._generate(
            "analyze file",
            self.analysis_model,
            ANALYSIS_SYSTEM_PROMPT,
            user_prompt,
            ANALYSIS_RESPONSE_SCHEMA,
            FileAnalysisResult,
        )
