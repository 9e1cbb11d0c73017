from abc import ABC, abstractmethod
from typing import Optional

from .entity import Staff


class StaffRepository(ABC):

    @abstractmethod
    async def create(self, staff: Staff) -> Staff:
        pass

    @abstractmethod
    async def get_by_id(self, staff_id: int) -> Optional[Staff]:
        pass
