"""Activity store: append-only audit logs for users and agents.

Rows are only ever inserted. Writers flush but never commit; the
calling service owns the transaction so the log entry lands (or not)
together with the change it describes.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tcp_platform.db.models import ActivityLog, AgentActivityLog


class ActivityStore:
    """Writes and reads activity_logs and agent_activity_logs."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        action: str,
        *,
        user_id: int | None = None,
        company_id: int | None = None,
        metadata: dict | None = None,
        ip_address: str | None = None,
    ) -> ActivityLog:
        entry = ActivityLog(
            user_id=user_id,
            company_id=company_id,
            action=action,
            meta=metadata or {},
            ip_address=ip_address,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def record_agent(
        self,
        agent_id: int,
        action: str,
        *,
        metadata: dict | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AgentActivityLog:
        entry = AgentActivityLog(
            agent_id=agent_id,
            action=action,
            meta=metadata or {},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def for_company(self, company_id: int, limit: int = 100) -> list[ActivityLog]:
        result = await self.db.execute(
            select(ActivityLog)
            .where(ActivityLog.company_id == company_id)
            .order_by(ActivityLog.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def for_agent(self, agent_id: int, limit: int = 100) -> list[AgentActivityLog]:
        result = await self.db.execute(
            select(AgentActivityLog)
            .where(AgentActivityLog.agent_id == agent_id)
            .order_by(AgentActivityLog.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
