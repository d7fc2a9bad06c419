"""Application-wide constants."""

# Pagination constants
DEFAULT_PAGINATION_LIMIT = 50
"""Default pagination limit for list endpoints."""

MAX_PAGINATION_LIMIT = 100
"""Maximum allowed pagination limit."""

MIN_PAGINATION_LIMIT = 1
"""Minimum allowed pagination limit."""

RECENT_TRIGGERS_LIMIT = 5
"""Number of triggers included in the dashboard summary."""

ALLOWED_DIGEST_FREQUENCY_HOURS = (6, 12, 24, 168)
"""Digest cadences offered by the dashboard (6h, 12h, daily, weekly)."""

DECOMMISSIONED_WINDFARM_STATUS = "decommissioned"
"""Windfarm status excluded from ``all_windfarms`` rule scope."""
