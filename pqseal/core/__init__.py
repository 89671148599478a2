"""
Core module - Contains configuration, logging, errors and the crypto core.
"""

from pqseal.core.config import PqSealConfig
from pqseal.core.logging import SecureLogFilter, configure_logging, get_secure_logger

__all__ = ["PqSealConfig", "SecureLogFilter", "configure_logging", "get_secure_logger"]
