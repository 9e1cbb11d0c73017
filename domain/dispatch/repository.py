"""
Driver assignment repository port.
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import AssignmentType, DriverAssignment


class DriverAssignmentRepository(ABC):

    @abstractmethod
    async def create(self, assignment: DriverAssignment) -> DriverAssignment:
        pass

    @abstractmethod
    async def get_by_id(self, assignment_id: int) -> Optional[DriverAssignment]:
        pass

    @abstractmethod
    async def get_for_update(self, assignment_id: int) -> Optional[DriverAssignment]:
        pass

    @abstractmethod
    async def update(self, assignment: DriverAssignment) -> DriverAssignment:
        pass

    @abstractmethod
    async def list_for_order(
        self,
        order_id: int,
        assignment_type: Optional[AssignmentType] = None,
    ) -> List[DriverAssignment]:
        pass
