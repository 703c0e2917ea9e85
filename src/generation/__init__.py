"""
Generation Package
===================
Adapter around the external generative model used for twin synthesis,
optimization suggestions and uploaded-file analysis.
"""

from .adapter import (
    GenerationService,
    GenerationError,
    InvalidGenerationRequest,
)
from .schemas import (
    Dimensions,
    TwinSpecifications,
    TwinGenerationResult,
    OptimizationResult,
    FileAnalysisResult,
)

__all__ = [
    "GenerationService",
    "GenerationError",
    "InvalidGenerationRequest",
    "Dimensions",
    "TwinSpecifications",
    "TwinGenerationResult",
    "OptimizationResult",
    "FileAnalysisResult",
]
