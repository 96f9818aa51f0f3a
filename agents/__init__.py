"""
Agents package - One agent per cascade stage
"""
from agents.profile_detector_agent import ProfileDetectorAgent, profile_detector_agent
from agents.pattern_extractor_agent import PatternExtractorAgent, pattern_extractor_agent
from agents.generic_extractor_agent import GenericExtractorAgent, generic_extractor_agent
from agents.model_extractor_agent import (
    LLMStructuredCollaborator,
    ModelExtractionOutcome,
    ModelExtractorAgent,
    model_extractor_agent,
)
from agents.tabular_extractor_agent import TabularExtractorAgent, tabular_extractor_agent

__all__ = [
    "ProfileDetectorAgent",
    "profile_detector_agent",
    "PatternExtractorAgent",
    "pattern_extractor_agent",
    "GenericExtractorAgent",
    "generic_extractor_agent",
    "LLMStructuredCollaborator",
    "ModelExtractionOutcome",
    "ModelExtractorAgent",
    "model_extractor_agent",
    "TabularExtractorAgent",
    "tabular_extractor_agent",
]
