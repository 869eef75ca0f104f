"""
Constants and configuration values for depfetch.

This module contains all hardcoded values, URLs, timeouts, and other constants
used throughout the application.
"""

# Registry
DEFAULT_REGISTRY_URL = "https://registry.npmjs.org/"
REGISTRY_LATEST_SUFFIX = "latest"

# Cache keys are "<registry>::<name>"; "::" cannot occur in a URL base or a package name
CACHE_KEY_SEPARATOR = "::"
CACHE_STORAGE_KEY = "depfetch_cache_v1"
CACHE_FILE_NAME = "depfetch_cache.json"

# Graph building
DEFAULT_MAX_GRAPH_NODES = 200

# Downloads
TARBALL_EXTENSION = ".tgz"
DOWNLOADS_DIR_NAME = "depfetch"
DEFAULT_CHUNK_SIZE = 8192
BYTES_PER_MEGABYTE = 1024 * 1024
FILE_SIZE_MB_LOGGING_THRESHOLD = 1.0

# HTTP
HTTP_STATUS_ERROR_THRESHOLD = 400
REGISTRY_ACCEPT_HEADER = "application/json"
# Maximum characters of an opaque error body kept in RegistryError messages
ERROR_BODY_PREVIEW_CHARS = 200

# Configuration file names
CONFIG_FILE_NAME = "depfetch.yaml"
APP_NAME = "depfetch"

# Logging configuration
LOGGER_NAME = "depfetch"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
INFO_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
DEBUG_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s: %(message)s"
LOG_FILE_NAME = "depfetch.log"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_FILE_BACKUP_COUNT = 5

# Environment variable names
LOG_LEVEL_ENV_VAR = "DEPFETCH_LOG_LEVEL"

# Menu labels
MENU_BACK = "[Back]"
MENU_QUIT = "[Quit]"
MENU_DOWNLOAD_PACKAGE = "[Download package]"
MENU_DOWNLOAD_SELECTED = "[Download selected dependencies]"
MENU_DOWNLOAD_RECURSIVE = "[Download all recursively]"
MENU_EXPAND = "[Expand a dependency]"
MENU_SHOW_GRAPH = "[Show dependency graph]"
MENU_CLEAR_CACHE = "[Clear cache]"
