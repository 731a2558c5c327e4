"""
Core module initialization.
Exports configuration, logging utilities and the error taxonomy.
"""

from orderflow.core.config import get_settings, setup_logging, Settings, EnvironmentMode
from orderflow.core.errors import OrderFlowError

__all__ = ["get_settings", "setup_logging", "Settings", "EnvironmentMode", "OrderFlowError"]
