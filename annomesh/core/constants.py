"""
System-Wide Constants for the Annotation Store

All magic numbers and configuration defaults centralized here.
"""

from typing import Final

# =============================================================================
# ANNOTATIONS
# =============================================================================
# Write stamps are unsigned 64-bit
UINT64_MAX: Final[int] = 2**64 - 1

# =============================================================================
# LEVEL INDEX
# =============================================================================
DEFAULT_FINEST_WIDTH: Final[int] = 1
DEFAULT_MAX_LEVEL: Final[int] = 20

# =============================================================================
# FILTER PIPELINE
# =============================================================================
DEFAULT_RECENCY_COUNT: Final[int] = 1
FILTER_CHAIN_TYPE: Final[str] = "chain"

# =============================================================================
# STORAGE CODEC
# =============================================================================
COMPRESSION_THRESHOLD_BYTES: Final[int] = 512
CODEC_FLAG_RAW: Final[bytes] = b"\x00"
CODEC_FLAG_LZ4: Final[bytes] = b"\x01"

# =============================================================================
# REDIS BACKEND
# =============================================================================
REDIS_DEFAULT_PORT: Final[int] = 6379
REDIS_KEY_PREFIX: Final[str] = "annomesh"
REDIS_SOCKET_TIMEOUT_MS: Final[int] = 5000
