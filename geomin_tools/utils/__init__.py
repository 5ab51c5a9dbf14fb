"""Utility modules for GeoMin processing."""

from geomin_tools.utils.config import Config, get_config
from geomin_tools.utils.memory import get_available_memory, MemoryManager
from geomin_tools.utils.parallel import map_row_chunks

__all__ = [
    'Config', 'get_config',
    'get_available_memory', 'MemoryManager',
    'map_row_chunks',
]
