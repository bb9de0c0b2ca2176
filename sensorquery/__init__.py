"""
Sensor data retrieval library

Fetches time-series sensor data, device metadata and events from an IoT
data API and reshapes raw point streams into analysis-ready tables.
"""

__version__ = "1.0.0"

from sensorquery.components import DataAccess, EventsHandler
from sensorquery.config import ClientConfig

__all__ = ["DataAccess", "EventsHandler", "ClientConfig", "__version__"]
