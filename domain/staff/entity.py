"""
Staff entity - the acting party behind every admin, dispatch and refund command.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class StaffRole(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    OPERATION_MANAGER = "OPERATION_MANAGER"
    DRIVER = "DRIVER"
    FACILITY_TEAM = "FACILITY_TEAM"


@dataclass
class Staff:
    id: Optional[int]
    name: str
    email: str
    role: StaffRole
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.role = StaffRole(self.role)

    @property
    def is_available_driver(self) -> bool:
        return self.is_active and self.role == StaffRole.DRIVER
