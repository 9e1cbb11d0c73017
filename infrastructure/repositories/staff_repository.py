"""
Staff repository (SQLAlchemy).
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.staff.entity import Staff, StaffRole
from domain.staff.repository import StaffRepository
from infrastructure.models.staff import StaffModel


class SQLAlchemyStaffRepository(StaffRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: StaffModel) -> Staff:
        return Staff(
            id=model.id,
            name=model.name,
            email=model.email,
            role=StaffRole(model.role),
            is_active=model.is_active,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def create(self, staff: Staff) -> Staff:
        db_staff = StaffModel(
            name=staff.name,
            email=staff.email,
            role=staff.role.value,
            is_active=staff.is_active,
        )
        self.session.add(db_staff)
        await self.session.flush()
        await self.session.refresh(db_staff)
        return self._to_entity(db_staff)

    async def get_by_id(self, staff_id: int) -> Optional[Staff]:
        result = await self.session.execute(select(StaffModel).where(StaffModel.id == staff_id))
        db_staff = result.scalar_one_or_none()
        return self._to_entity(db_staff) if db_staff else None
