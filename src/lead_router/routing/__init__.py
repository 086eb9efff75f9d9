"""End-to-end routing over storage and writeback."""

from .service import RoutingService
from .writeback import Writeback, JsonFileWriteback

__all__ = [
    'RoutingService',
    'Writeback',
    'JsonFileWriteback',
]
