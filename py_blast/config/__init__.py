"""
Configuration for the blast engine.
"""

from .config import EngineSettings

__all__ = ['EngineSettings']
