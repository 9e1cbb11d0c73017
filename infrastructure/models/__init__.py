"""Infrastructure models package exports."""
from .base import Base, metadata
from .staff import StaffModel
from .order import OrderModel, OrderHistoryModel
from .dispatch import DriverAssignmentModel
from .payment import PaymentRecordModel, WalletModel, WalletTransactionModel

__all__ = [
    "Base",
    "metadata",
    "StaffModel",
    "OrderModel",
    "OrderHistoryModel",
    "DriverAssignmentModel",
    "PaymentRecordModel",
    "WalletModel",
    "WalletTransactionModel",
]
