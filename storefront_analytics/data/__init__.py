"""
Synthetic Data Module
"""
from .generators import StorefrontDataGenerator

__all__ = ["StorefrontDataGenerator"]
