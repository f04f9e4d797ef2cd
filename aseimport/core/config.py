# ==============================================================================
# ASEIMPORT - CONFIGURATION MODULE
# ==============================================================================
# Centralized configuration for the decoder.
#
# This module handles:
#   - Loading/saving configuration from a JSON file
#   - Default values for all settings
#   - Range clamping for numeric settings
#
# Configuration is stored in: data/config.json (optional; defaults otherwise)
#
# Usage:
#   from aseimport.core.config import Config
#   config = Config("my_config.json")
#   config.load()
#   config.max_pixel_buffer_mb = 64
#   parser = AsepriteParser(config)
# ==============================================================================

import os
import json
import logging
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


# ==============================================================================
# DEFAULT CONFIGURATION VALUES
# ==============================================================================
# These are used when no config file exists or when values are missing.

DEFAULT_CONFIG = {
    # -------------------------------------------------------------------------
    # DIAGNOSTICS
    # -------------------------------------------------------------------------
    # Trace every chunk header at DEBUG level
    "debug_mode": False,

    # Log unsupported chunk types at WARNING (False = DEBUG)
    "warn_unsupported_chunks": True,

    # -------------------------------------------------------------------------
    # LIMITS
    # -------------------------------------------------------------------------
    # Largest single pixel buffer a cel may allocate (in MB, 0 = no limit)
    "max_pixel_buffer_mb": 0,

    # -------------------------------------------------------------------------
    # DECOMPRESSION
    # -------------------------------------------------------------------------
    # Bytes pulled from the source per step when inflating compressed cels
    "zlib_read_size": 4096,
}

MIN_ZLIB_READ_SIZE = 64
MAX_ZLIB_READ_SIZE = 1024 * 1024


# ==============================================================================
# CONFIGURATION CLASS
# ==============================================================================
class Config:
    """
    Configuration manager for the decoder.

    Settings are stored in a JSON file and can be accessed as
    properties on this object.

    Attributes:
        config_path: Path to the configuration file
        data: Dictionary containing all settings

    Example:
        >>> config = Config()
        >>> config.load()
        >>> config.debug_mode = True
        >>> config.save()
    """

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to config file. If None, uses default location.
        """
        if config_path:
            self.config_path = config_path
        else:
            # Default: data/config.json relative to project root
            project_root = os.path.dirname(
                os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
            )
            self.config_path = os.path.join(project_root, 'data', 'config.json')

        self.data: Dict[str, Any] = DEFAULT_CONFIG.copy()
        self._modified = False

    # -------------------------------------------------------------------------
    # LOADING AND SAVING
    # -------------------------------------------------------------------------

    def load(self) -> bool:
        """
        Load configuration from file.

        If the file doesn't exist, defaults are used.
        Missing keys are filled with defaults; unknown keys are ignored.

        Returns:
            True if file was loaded, False if using defaults
        """
        if not os.path.isfile(self.config_path):
            logger.debug("Config file not found, using defaults")
            return False

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                loaded = json.load(f)
        except json.JSONDecodeError as e:
            logger.error("Invalid config file %s: %s", self.config_path, e)
            return False
        except OSError as e:
            logger.error("Failed to load config %s: %s", self.config_path, e)
            return False

        if not isinstance(loaded, dict):
            logger.error("Invalid config file %s: top level must be an object", self.config_path)
            return False

        # Merge with defaults (so new settings get default values)
        for key, value in loaded.items():
            if key in self.data:
                self.data[key] = value

        logger.info("Loaded config from %s", self.config_path)
        self._modified = False
        return True

    def save(self) -> bool:
        """
        Save configuration to file.

        Creates the directory if it doesn't exist.

        Returns:
            True if saved successfully
        """
        try:
            directory = os.path.dirname(self.config_path)
            if directory:
                os.makedirs(directory, exist_ok=True)

            with open(self.config_path, 'w', encoding='utf-8') as f:
                json.dump(self.data, f, indent=4, sort_keys=True)
        except OSError as e:
            logger.error("Failed to save config %s: %s", self.config_path, e)
            return False

        logger.info("Saved config to %s", self.config_path)
        self._modified = False
        return True

    def reset_to_defaults(self):
        """Reset all settings to their default values."""
        self.data = DEFAULT_CONFIG.copy()
        self._modified = True

    @property
    def modified(self) -> bool:
        """True if settings changed since the last load/save."""
        return self._modified

    # -------------------------------------------------------------------------
    # PROPERTY ACCESS
    # -------------------------------------------------------------------------

    @property
    def debug_mode(self) -> bool:
        """Check if per-chunk tracing is enabled."""
        return bool(self.data.get('debug_mode', False))

    @debug_mode.setter
    def debug_mode(self, value: bool):
        self.data['debug_mode'] = bool(value)
        self._modified = True

    @property
    def warn_unsupported_chunks(self) -> bool:
        """Check if unsupported chunk types are reported as warnings."""
        return bool(self.data.get('warn_unsupported_chunks', True))

    @warn_unsupported_chunks.setter
    def warn_unsupported_chunks(self, value: bool):
        self.data['warn_unsupported_chunks'] = bool(value)
        self._modified = True

    @property
    def max_pixel_buffer_mb(self) -> int:
        """Get the pixel buffer limit in MB (0 = no limit)."""
        return max(0, int(self.data.get('max_pixel_buffer_mb', 0)))

    @max_pixel_buffer_mb.setter
    def max_pixel_buffer_mb(self, value: int):
        self.data['max_pixel_buffer_mb'] = max(0, int(value))
        self._modified = True

    @property
    def max_pixel_buffer_bytes(self) -> int:
        """Pixel buffer limit in bytes (0 = no limit)."""
        return self.max_pixel_buffer_mb * 1024 * 1024

    @property
    def zlib_read_size(self) -> int:
        """Get the inflate read step in bytes."""
        value = int(self.data.get('zlib_read_size', 4096))
        return max(MIN_ZLIB_READ_SIZE, min(MAX_ZLIB_READ_SIZE, value))

    @zlib_read_size.setter
    def zlib_read_size(self, value: int):
        self.data['zlib_read_size'] = max(MIN_ZLIB_READ_SIZE, min(MAX_ZLIB_READ_SIZE, int(value)))
        self._modified = True

    # -------------------------------------------------------------------------
    # GENERIC ACCESS
    # -------------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value."""
        return self.data.get(key, default)

    def set(self, key: str, value: Any):
        """Set a configuration value."""
        self.data[key] = value
        self._modified = True

    def __getitem__(self, key: str) -> Any:
        """Allow dictionary-style access: config['key']"""
        return self.data[key]

    def __setitem__(self, key: str, value: Any):
        """Allow dictionary-style setting: config['key'] = value"""
        self.data[key] = value
        self._modified = True


# ==============================================================================
# GLOBAL CONFIG INSTANCE
# ==============================================================================

_global_config: Optional[Config] = None


def get_config() -> Config:
    """
    Get the global configuration instance.

    Creates and loads config on first call.
    """
    global _global_config

    if _global_config is None:
        _global_config = Config()
        _global_config.load()

    return _global_config
