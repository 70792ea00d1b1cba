"""Dub Chinese-language videos into English while keeping timing and background audio."""

from .config import PipelineConfig, ServiceConfig
from .pipeline import VideoDubbingAgent
from .tracker import JobTracker

__all__ = ["VideoDubbingAgent", "PipelineConfig", "ServiceConfig", "JobTracker"]
