# hera/urp/core/context.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import uuid

from hera.urp.contracts.store import EntityStoreClient
from hera.urp.core.utils import utc_now


@dataclass(frozen=True)
class ExecutionContext:
    """Per-call context threaded through every primitive of one recipe run."""

    organization_id: str
    store: EntityStoreClient
    request_id: str
    now: datetime
    actor_user_id: str | None = None
    smart_code_prefix: str | None = None

    @classmethod
    def create(
        cls,
        *,
        organization_id: str,
        store: EntityStoreClient,
        actor_user_id: str | None = None,
        smart_code_prefix: str | None = None,
    ) -> "ExecutionContext":
        if not organization_id:
            raise ValueError("organization_id is required")
        return cls(
            organization_id=organization_id,
            store=store,
            request_id=str(uuid.uuid4()),
            now=utc_now(),
            actor_user_id=actor_user_id,
            smart_code_prefix=smart_code_prefix,
        )
