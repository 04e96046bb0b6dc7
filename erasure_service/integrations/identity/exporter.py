"""Pre-deletion export of everything the identity provider holds on a subject.

The export is a JSON document; the backup step checksums and stores it.
"""

from __future__ import annotations

import json
import logging

from erasure_service.deletion.collaborators import IdentityProvider
from erasure_service.scheduling.ticker import Clock

logger = logging.getLogger(__name__)


class IdentityDataExporter:
    def __init__(self, identity_provider: IdentityProvider, clock: Clock) -> None:
        self._identity = identity_provider
        self._clock = clock

    async def export_all(self, subject_id: str) -> bytes:
        profile = await self._identity.export_profile(subject_id)
        if profile is None:
            logger.warning("No identity profile to export for subject %s", subject_id)

        document = {
            "subject_id": subject_id,
            "exported_at": self._clock.now().isoformat(),
            "profile": profile,
        }
        return json.dumps(document, indent=2, default=str).encode("utf-8")
