"""
Test Fixtures Package

Shared test utilities and helpers for consistent testing across all modules.
"""

from .backend_factory import EventRecorder, FakeBackend, FakeClock, RecordingSleep

__all__ = ["EventRecorder", "FakeBackend", "FakeClock", "RecordingSleep"]
