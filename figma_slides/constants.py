"""
Constants for the Figma slide library

Defines database, collection and settings names used across the library.
This prevents naming mismatches between the ingestion service, the token
provider and the storage adapter.
"""

# MongoDB
MONGODB_DATABASE_SLIDE_LIBRARY = "slide_library"
MONGODB_COLLECTION_SLIDES = "slides"  # Draft and published slide records
MONGODB_COLLECTION_SYSTEM_SETTINGS = "system_settings"  # key/value settings store

# Settings keys
SETTINGS_KEY_FIGMA_TOKEN = "FIGMA_ACCESS_TOKEN"

# Figma API
FIGMA_API_BASE = "https://api.figma.com/v1"
DEFAULT_IMAGE_SCALES = (0.5, 0.25, 0.1, 0.05, 0.02, 0.01)
VECTOR_FORMATS = ("svg",)

# Values that downstream consumers treat as "unset"
UNSET_SENTINELS = ("", "none")
