from .tenancy import Shop
from .auth import User, Role, UserRole, Permission, RolePermission, SessionToken
from .security import SecurityEvent
from .ledger import LedgerEvent
from .catalog import Category, PaymentMethod, Product
from .customers import Customer, CustomerPointsAccount, CustomerPointsTransaction, PointsRedemption
from .suppliers import Supplier
from .sellers import Seller, SalesGoal
from .sales import Sale, SaleItem, Installment
from .finance import Expense, Revenue, CashFlowDay, CashMovement
from .goals import Goal, GoalProgress, Alert, AlertConfig
from .commissions import CommissionRule, Commission
from .assistant import ChatMessage
from .leads import Lead

__all__ = [
    "Shop",
    "User",
    "Role",
    "UserRole",
    "Permission",
    "RolePermission",
    "SessionToken",
    "SecurityEvent",
    "LedgerEvent",
    "Category",
    "PaymentMethod",
    "Product",
    "Customer",
    "CustomerPointsAccount",
    "CustomerPointsTransaction",
    "PointsRedemption",
    "Supplier",
    "Seller",
    "SalesGoal",
    "Sale",
    "SaleItem",
    "Installment",
    "Expense",
    "Revenue",
    "CashFlowDay",
    "CashMovement",
    "Goal",
    "GoalProgress",
    "Alert",
    "AlertConfig",
    "CommissionRule",
    "Commission",
    "ChatMessage",
    "Lead",
]
