from typing import Optional

OWNER, ADMIN, ACCOUNTANT, VIEWER = "owner", "admin", "accountant", "viewer"
ROLES = (OWNER, ADMIN, ACCOUNTANT, VIEWER)

DESCRIPTIONS = {
    OWNER: "Full access to all company data and settings",
    ADMIN: "Can manage accounts and transactions, view reports",
    ACCOUNTANT: "Can create/edit transactions, view accounts and reports",
    VIEWER: "Read-only access to accounts and reports",
}


def can_manage_accounts(role: Optional[str]) -> bool:
    return role in (OWNER, ADMIN)


def can_view_accounts(role: Optional[str]) -> bool:
    return role in ROLES


def can_manage_transactions(role: Optional[str]) -> bool:
    return role in (OWNER, ADMIN, ACCOUNTANT)


def can_manage_company(role: Optional[str]) -> bool:
    return role == OWNER


def describe_role(role: Optional[str]) -> str:
    return DESCRIPTIONS.get(role, "No access")


def available_actions(role: Optional[str]) -> dict:
    manage_accounts = can_manage_accounts(role)
    return {
        "canManageAccounts": manage_accounts,
        "canViewAccounts": can_view_accounts(role),
        "canManageTransactions": can_manage_transactions(role),
        "canManageCompany": can_manage_company(role),
        "canCreateAccounts": manage_accounts,
        "canEditAccounts": manage_accounts,
        "canDeleteAccounts": manage_accounts,
        "canViewReports": can_view_accounts(role),
    }
