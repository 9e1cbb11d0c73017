"""
Driver assignment repository (SQLAlchemy).
"""
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import AssignmentNotFoundException
from domain.dispatch.entity import AssignmentStatus, AssignmentType, DriverAssignment
from domain.dispatch.repository import DriverAssignmentRepository
from infrastructure.models.dispatch import DriverAssignmentModel


logger = get_logger(__name__)


class SQLAlchemyDriverAssignmentRepository(DriverAssignmentRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: DriverAssignmentModel) -> DriverAssignment:
        return DriverAssignment(
            id=model.id,
            order_id=model.order_id,
            driver_id=model.driver_id,
            assignment_type=AssignmentType(model.assignment_type),
            status=AssignmentStatus(model.status),
            estimated_time=model.estimated_time,
            actual_time=model.actual_time,
            notes=model.notes,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def _load(self, assignment_id: int, *, for_update: bool = False) -> Optional[DriverAssignmentModel]:
        stmt = select(DriverAssignmentModel).where(DriverAssignmentModel.id == assignment_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, assignment: DriverAssignment) -> DriverAssignment:
        db_assignment = DriverAssignmentModel(
            order_id=assignment.order_id,
            driver_id=assignment.driver_id,
            assignment_type=assignment.assignment_type.value,
            status=assignment.status.value,
            estimated_time=assignment.estimated_time,
            actual_time=assignment.actual_time,
            notes=assignment.notes,
        )
        self.session.add(db_assignment)
        await self.session.flush()
        await self.session.refresh(db_assignment)
        logger.info(
            "assignment_created",
            assignment_id=db_assignment.id,
            order_id=db_assignment.order_id,
            driver_id=db_assignment.driver_id,
            assignment_type=db_assignment.assignment_type,
        )
        return self._to_entity(db_assignment)

    async def get_by_id(self, assignment_id: int) -> Optional[DriverAssignment]:
        db_assignment = await self._load(assignment_id)
        return self._to_entity(db_assignment) if db_assignment else None

    async def get_for_update(self, assignment_id: int) -> Optional[DriverAssignment]:
        db_assignment = await self._load(assignment_id, for_update=True)
        return self._to_entity(db_assignment) if db_assignment else None

    async def update(self, assignment: DriverAssignment) -> DriverAssignment:
        db_assignment = await self._load(assignment.id)
        if not db_assignment:
            raise AssignmentNotFoundException(assignment.id)

        db_assignment.driver_id = assignment.driver_id
        db_assignment.status = assignment.status.value
        db_assignment.estimated_time = assignment.estimated_time
        db_assignment.actual_time = assignment.actual_time
        db_assignment.notes = assignment.notes
        if assignment.updated_at is not None:
            db_assignment.updated_at = assignment.updated_at

        await self.session.flush()
        await self.session.refresh(db_assignment)
        logger.info(
            "assignment_updated",
            assignment_id=db_assignment.id,
            status=db_assignment.status,
            driver_id=db_assignment.driver_id,
        )
        return self._to_entity(db_assignment)

    async def list_for_order(
        self,
        order_id: int,
        assignment_type: Optional[AssignmentType] = None,
    ) -> List[DriverAssignment]:
        stmt = select(DriverAssignmentModel).where(DriverAssignmentModel.order_id == order_id)
        if assignment_type is not None:
            stmt = stmt.where(DriverAssignmentModel.assignment_type == AssignmentType(assignment_type).value)
        stmt = stmt.order_by(DriverAssignmentModel.created_at.asc(), DriverAssignmentModel.id.asc())
        result = await self.session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars().all()]
