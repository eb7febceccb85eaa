"""
Serving Module
"""
from .app import create_app
from .registry import PipelineRegistry

__all__ = ["create_app", "PipelineRegistry"]
