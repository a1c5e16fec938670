# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- CATALOG --

CATALOG_PERMISSIONS = [
    (
        "VIEW_CATALOG",
        "View Catalog",
        "View products, categories and payment methods",
        PermissionCategory.CATALOG,
    ),
    (
        "MANAGE_CATALOG",
        "Manage Catalog",
        "Create, edit and deactivate products, categories and payment methods",
        PermissionCategory.CATALOG,
    ),
    (
        "MANAGE_STOCK",
        "Manage Stock",
        "Set product quantities and reservations",
        PermissionCategory.CATALOG,
    ),
]


# -- SALES --

SALES_PERMISSIONS = [
    (
        "VIEW_SALES",
        "View Sales",
        "View sales, items and installments",
        PermissionCategory.SALES,
    ),
    (
        "CREATE_SALE",
        "Create Sale",
        "Register new sales",
        PermissionCategory.SALES,
    ),
    (
        "MANAGE_SALES",
        "Manage Sales",
        "Edit, cancel and delete sales; settle installments",
        PermissionCategory.SALES,
    ),
]


# -- PEOPLE --

PEOPLE_PERMISSIONS = [
    (
        "VIEW_CUSTOMERS",
        "View Customers",
        "View customers and their points",
        PermissionCategory.PEOPLE,
    ),
    (
        "MANAGE_CUSTOMERS",
        "Manage Customers",
        "Create and edit customers; request point redemptions",
        PermissionCategory.PEOPLE,
    ),
    (
        "MANAGE_LOYALTY",
        "Manage Loyalty",
        "Adjust points and decide redemption requests",
        PermissionCategory.PEOPLE,
    ),
    (
        "VIEW_SUPPLIERS",
        "View Suppliers",
        "View supplier list",
        PermissionCategory.PEOPLE,
    ),
    (
        "MANAGE_SUPPLIERS",
        "Manage Suppliers",
        "Create, edit and deactivate suppliers",
        PermissionCategory.PEOPLE,
    ),
    (
        "VIEW_SELLERS",
        "View Sellers",
        "View sellers and sales goals",
        PermissionCategory.PEOPLE,
    ),
    (
        "MANAGE_SELLERS",
        "Manage Sellers",
        "Create and edit sellers and their sales goals",
        PermissionCategory.PEOPLE,
    ),
]


# -- FINANCE --

FINANCE_PERMISSIONS = [
    (
        "VIEW_FINANCE",
        "View Finance",
        "View expenses, revenues and cash flow",
        PermissionCategory.FINANCE,
    ),
    (
        "MANAGE_FINANCE",
        "Manage Finance",
        "Record expenses, revenues and manual cash movements",
        PermissionCategory.FINANCE,
    ),
    (
        "VIEW_REPORTS",
        "View Reports",
        "View financial reports and the dashboard",
        PermissionCategory.FINANCE,
    ),
]


# -- GOALS --

GOAL_PERMISSIONS = [
    (
        "VIEW_GOALS",
        "View Goals",
        "View goals and alerts",
        PermissionCategory.GOALS,
    ),
    (
        "MANAGE_GOALS",
        "Manage Goals",
        "Create goals, record progress and configure alerts",
        PermissionCategory.GOALS,
    ),
]


# -- COMMISSIONS --

COMMISSION_PERMISSIONS = [
    (
        "VIEW_COMMISSIONS",
        "View Commissions",
        "View commission rules, commissions and reports",
        PermissionCategory.COMMISSIONS,
    ),
    (
        "MANAGE_COMMISSIONS",
        "Manage Commissions",
        "Create and edit commission rules and commissions",
        PermissionCategory.COMMISSIONS,
    ),
    (
        "PAY_COMMISSIONS",
        "Pay Commissions",
        "Pay off pending commissions",
        PermissionCategory.COMMISSIONS,
    ),
]


# -- ASSISTANT --

ASSISTANT_PERMISSIONS = [
    (
        "USE_ASSISTANT",
        "Use Assistant",
        "Chat with the business assistant",
        PermissionCategory.ASSISTANT,
    ),
]


# -- SYSTEM --

SYSTEM_PERMISSIONS = [
    (
        "MANAGE_USERS",
        "Manage Users",
        "Create users and assign roles",
        PermissionCategory.SYSTEM,
    ),
    (
        "VIEW_AUDIT_LOG",
        "View Audit Log",
        "View ledger events",
        PermissionCategory.SYSTEM,
    ),
    (
        "VIEW_LEADS",
        "View Leads",
        "View interest forms submitted from the public site",
        PermissionCategory.SYSTEM,
    ),
]


PERMISSION_DEFINITIONS = (
    CATALOG_PERMISSIONS
    + SALES_PERMISSIONS
    + PEOPLE_PERMISSIONS
    + FINANCE_PERMISSIONS
    + GOAL_PERMISSIONS
    + COMMISSION_PERMISSIONS
    + ASSISTANT_PERMISSIONS
    + SYSTEM_PERMISSIONS
)
