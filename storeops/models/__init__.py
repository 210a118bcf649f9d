from storeops.models.attendance import AttendanceRecord, AttendanceSummary
from storeops.models.audit_log import AuditLog
from storeops.models.coin_transaction import CoinTransaction, LedgerTotals
from storeops.models.employee import Employee
from storeops.models.loyalty_settings import ProductLoyaltySettings, SystemSettings
from storeops.models.salary import SalaryAdjustments, SalaryRecord
from storeops.models.wallet import Wallet

__all__ = [
    "AttendanceRecord",
    "AttendanceSummary",
    "AuditLog",
    "CoinTransaction",
    "Employee",
    "LedgerTotals",
    "ProductLoyaltySettings",
    "SalaryAdjustments",
    "SalaryRecord",
    "SystemSettings",
    "Wallet",
]
