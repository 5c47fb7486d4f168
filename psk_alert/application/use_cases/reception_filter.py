"""
Reception filtering and enrichment for PSKAlert
"""

import logging
from typing import Optional

from psk_alert.core.domain.models import DecodedReception, EnrichedReport, WatchListSnapshot
from psk_alert.core.services.geo import distance_between

logger = logging.getLogger(__name__)


class ReceptionFilter:
    """Keeps receptions of watched transmitters and adds the path distance"""

    def process(self, reception: DecodedReception,
                snapshot: WatchListSnapshot) -> Optional[EnrichedReport]:
        """Return an enriched report, or None when the transmitter is not watched."""
        entry = snapshot.get(reception.transmitter_callsign)
        if entry is None:
            logger.debug(f"Callsign {reception.transmitter_callsign} not monitored, skipping")
            return None

        distance_km = distance_between(
            reception.transmitter_position, reception.receiver_position
        )
        report = EnrichedReport.from_reception(reception, distance_km)
        report.transmitter_callsign = entry.callsign
        return report
