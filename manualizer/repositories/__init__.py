"""
Repository layer: JSON-file persistence of manual documents.
"""
from manualizer.repositories.manual_repository import ManualRepository

__all__ = [
    'ManualRepository',
]
