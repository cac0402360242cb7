from typing import Any

from litestar import Controller, get
from sqlalchemy.ext.asyncio import AsyncSession

from damworks.auth import ADMIN_ROLE, require_role
from damworks.db.services import job_service


class QueueController(Controller):
    """Operational view of the processing queue."""

    path = "/queue"
    guards = [require_role(ADMIN_ROLE)]

    @get("/metrics")
    async def metrics(self, db_session: AsyncSession) -> dict[str, Any]:
        return await job_service.get_queue_metrics(db_session)
