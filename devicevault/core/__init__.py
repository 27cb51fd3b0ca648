"""
Core module - configuration, logging, errors and base components.
"""

from devicevault.core.config import VaultConfig
from devicevault.core.logging import get_secure_logger, configure_logging, SecureLogFilter

__all__ = ["VaultConfig", "get_secure_logger", "configure_logging", "SecureLogFilter"]
