"""Search/transfer provider adapters."""

from soulfetch.infrastructure.providers.slskd_provider import (
    SLSKD_STATE_MAPPING,
    SlskdSearchProvider,
    map_slskd_state,
)

__all__ = ["SLSKD_STATE_MAPPING", "SlskdSearchProvider", "map_slskd_state"]
