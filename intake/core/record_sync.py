"""
Application Record Synchronizer
-------------------------------
Merge-patch persistence of draft fields. The backend is authoritative: the
merged record it returns replaces the cached snapshot.
"""

from typing import Iterable, Optional

from intake.backend.client import BackendError
from intake.backend.contract import draft_to_patch, record_from_wire
from intake.observability.logging import log
from intake.store.models import ApplicationDraft, ApplicationRecord


class RecordSynchronizer:
    def __init__(self, client):
        self.client = client

    async def load(self, application_id: str) -> ApplicationRecord:
        """Raises BackendError; the wizard cannot start without its record."""
        data = await self.client.get_application(application_id)
        record = record_from_wire(data)
        if not record.id:
            record.id = application_id
        log(event="record_loaded", applicationId=application_id, status=record.status)
        return record

    async def persist(
        self,
        application_id: str,
        draft: ApplicationDraft,
        steps: Iterable[int],
        current: Optional[ApplicationRecord] = None,
    ) -> ApplicationRecord:
        """
        Send the fields owned by `steps` and return the merged record.
        Raises BackendError on failure (fatal to the transition).
        """
        patch = draft_to_patch(draft, steps)
        log(event="record_patch", applicationId=application_id, fields=patch)
        data = await self.client.update_application(application_id, patch)
        if not data:
            # Backend acknowledged without a body; fold the patch into what we had
            base = dict(current.__dict__) if current is not None else {"id": application_id}
            extra = base.pop("extra", {}) or {}
            data = {**extra, **base, **patch}
        record = record_from_wire(data)
        if not record.id:
            record.id = application_id
        return record

    async def refresh(self, application_id: str, current: Optional[ApplicationRecord]) -> Optional[ApplicationRecord]:
        """Re-fetch for the outcome step. On failure keep the cached snapshot."""
        try:
            return await self.load(application_id)
        except BackendError as e:
            log(event="record_refresh_failed", applicationId=application_id, status=e.status, error=e.message[:300])
            return current
