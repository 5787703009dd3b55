"""
Permission constants: the exhaustive list of actions in the marketplace.

Each permission is a plain snake_case tag. Roles map to sets of these via
ROLE_PERMISSIONS, and UI routes map to a single one via ROUTE_PERMISSIONS.
"""

from enum import Enum


class Permission(str, Enum):
    # ── Dashboard / profile ──
    VIEW_DASHBOARD = "view_dashboard"
    VIEW_OWN_PROFILE = "view_own_profile"
    EDIT_OWN_PROFILE = "edit_own_profile"

    # ── Projects ──
    CREATE_PROJECTS = "create_projects"
    VIEW_OWN_PROJECTS = "view_own_projects"
    EDIT_OWN_PROJECTS = "edit_own_projects"
    DELETE_OWN_PROJECTS = "delete_own_projects"
    VIEW_ALL_PROJECTS = "view_all_projects"
    MANAGE_PROJECTS = "manage_projects"              # edit/delete any project, change status

    # ── Verification ──
    VERIFY_PROJECTS = "verify_projects"              # approve / reject submissions
    ADD_VERIFICATION_NOTES = "add_verification_notes"
    VIEW_VERIFICATION_HISTORY = "view_verification_history"

    # ── Marketplace ──
    VIEW_MARKETPLACE = "view_marketplace"
    PURCHASE_CREDITS = "purchase_credits"
    CREATE_CREDIT_LISTINGS = "create_credit_listings"
    MANAGE_OWN_LISTINGS = "manage_own_listings"
    MANAGE_MARKETPLACE = "manage_marketplace"

    # ── Portfolio ──
    VIEW_OWN_PORTFOLIO = "view_own_portfolio"
    RETIRE_CREDITS = "retire_credits"
    VIEW_CERTIFICATES = "view_certificates"
    VIEW_RECEIPTS = "view_receipts"

    # ── Wallet ──
    MANAGE_WALLET = "manage_wallet"                  # top-up, withdraw
    VIEW_OWN_TRANSACTIONS = "view_own_transactions"
    VIEW_ALL_TRANSACTIONS = "view_all_transactions"

    # ── Administration ──
    VIEW_ADMIN_PANEL = "view_admin_panel"
    MANAGE_USERS = "manage_users"                    # list users, change roles
    VIEW_ALL_USERS = "view_all_users"
    VIEW_AUDIT_LOGS = "view_audit_logs"
    VIEW_ANALYTICS = "view_analytics"

    # ── System ──
    MANAGE_SYSTEM_SETTINGS = "manage_system_settings"
    MANAGE_ROLES = "manage_roles"
