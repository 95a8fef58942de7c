"""
Database package for imagestore

Usage:
    from imagestore.database import DataAccessLayer

    dal = DataAccessLayer(settings)
    await dal.bootstrap()
    if await dal.camera_exists("front-door"):
        ...
"""

from .core import AsyncDatabase
from .data_access import DataAccessLayer

__all__ = ["AsyncDatabase", "DataAccessLayer"]
