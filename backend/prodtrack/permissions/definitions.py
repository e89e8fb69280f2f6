# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)


class PermissionCategory:
    """Permission categories for grouping related permissions."""
    CLIENTS = "CLIENTS"
    PROJECTS = "PROJECTS"
    PRODUCTION = "PRODUCTION"
    INVOICES = "INVOICES"
    ACTIVITY = "ACTIVITY"


# -- CLIENTS --

CLIENT_PERMISSIONS = [
    (
        "VIEW_CLIENTS",
        "View Clients",
        "View the client list and client details",
        PermissionCategory.CLIENTS,
    ),
    (
        "MANAGE_CLIENTS",
        "Manage Clients",
        "Create, edit and delete clients",
        PermissionCategory.CLIENTS,
    ),
]


# -- PROJECTS --

PROJECT_PERMISSIONS = [
    (
        "VIEW_PROJECTS",
        "View Projects",
        "View projects with reconciled progress",
        PermissionCategory.PROJECTS,
    ),
    (
        "MANAGE_PROJECTS",
        "Manage Projects",
        "Create, edit and delete projects",
        PermissionCategory.PROJECTS,
    ),
    (
        "SET_PROJECT_STATUS",
        "Set Project Status",
        "Manually set or clear a project's status",
        PermissionCategory.PROJECTS,
    ),
]


# -- PRODUCTION --

PRODUCTION_PERMISSIONS = [
    (
        "VIEW_PRODUCTION",
        "View Production",
        "View daily production entries",
        PermissionCategory.PRODUCTION,
    ),
    (
        "RECORD_PRODUCTION",
        "Record Production",
        "Create, edit and delete production entries for the user's own factory",
        PermissionCategory.PRODUCTION,
    ),
    (
        "RECORD_PRODUCTION_ANY_FACTORY",
        "Record Production (All Factories)",
        "Create, edit and delete production entries for any factory",
        PermissionCategory.PRODUCTION,
    ),
]


# -- INVOICES --

INVOICE_PERMISSIONS = [
    (
        "VIEW_INVOICES",
        "View Invoices",
        "View invoice metadata",
        PermissionCategory.INVOICES,
    ),
    (
        "MANAGE_INVOICES",
        "Manage Invoices",
        "Record and remove invoice uploads",
        PermissionCategory.INVOICES,
    ),
]


# -- ACTIVITY --

ACTIVITY_PERMISSIONS = [
    (
        "VIEW_ACTIVITY",
        "View Activity",
        "View the role-filtered activity log",
        PermissionCategory.ACTIVITY,
    ),
    (
        "CLEAR_ACTIVITY",
        "Clear Activity",
        "Clear the shared activity log",
        PermissionCategory.ACTIVITY,
    ),
]


PERMISSION_DEFINITIONS = (
    CLIENT_PERMISSIONS
    + PROJECT_PERMISSIONS
    + PRODUCTION_PERMISSIONS
    + INVOICE_PERMISSIONS
    + ACTIVITY_PERMISSIONS
)
