"""
py-blast: blast pattern geometry and timing engine.
"""

from .config import EngineSettings
from .core.engine import BlastEngine, BlastResult
from .core.models import Hole, HoleKey
from .utils.cancellation import BackgroundRecompute, CancellationToken

__version__ = "0.1.0"

__all__ = ['BlastEngine', 'BlastResult', 'EngineSettings', 'Hole', 'HoleKey',
           'BackgroundRecompute', 'CancellationToken']
