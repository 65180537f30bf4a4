"""Spatial candidate lookup for duplicate detection and clustering."""

from .base_backend import SpatialBackend
from .spatial_service import SpatialService

__all__ = ["SpatialBackend", "SpatialService"]
