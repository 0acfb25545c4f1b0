"""
app/connectors package marker.
"""

from app.connectors.base import BaseConnector
from app.connectors.exa_connector import ExaConnector
from app.connectors.firecrawl_connector import FirecrawlConnector
from app.connectors.serper_connector import SerperConnector

__all__ = [
    "BaseConnector",
    "ExaConnector",
    "FirecrawlConnector",
    "SerperConnector",
]
