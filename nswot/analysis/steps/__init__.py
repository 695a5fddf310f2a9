"""
Pipeline steps.
"""

from .extraction import ExtractionStep
from .swot_generation import SwotGenerationStep
from .synthesis import SynthesisStep
from .theme_extraction import ThemeExtractionStep

__all__ = ["ExtractionStep", "SynthesisStep", "SwotGenerationStep", "ThemeExtractionStep"]
