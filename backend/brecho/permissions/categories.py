# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    CATALOG = "CATALOG"
    SALES = "SALES"
    PEOPLE = "PEOPLE"
    FINANCE = "FINANCE"
    GOALS = "GOALS"
    COMMISSIONS = "COMMISSIONS"
    ASSISTANT = "ASSISTANT"
    SYSTEM = "SYSTEM"
