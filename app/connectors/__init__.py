"""Upstream data connectors"""

from app.connectors.base_connector import BaseConnector, UpstreamAPIError
from app.connectors.bevvi_connector import BevviOrderConnector

__all__ = [
    "BaseConnector",
    "UpstreamAPIError",
    "BevviOrderConnector",
]
