"""
Runtime helpers: cancellation and logging setup.
"""

from .cancellation import BackgroundRecompute, CancellationToken
from .logging import configure_logging

__all__ = ['BackgroundRecompute', 'CancellationToken', 'configure_logging']
