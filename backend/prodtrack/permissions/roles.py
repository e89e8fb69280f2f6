# Overview: Role names, legacy aliases and the default role -> permission mapping.

ROLE_OWNER = "owner"
ROLE_ACCOUNTANT = "accountant"
ROLE_SUPERVISOR = "factory supervisor"

ALL_ROLES = (ROLE_OWNER, ROLE_ACCOUNTANT, ROLE_SUPERVISOR)

# Role names written by earlier releases of the front end
ROLE_ALIASES = {
    "SUPER_ADMIN": ROLE_OWNER,
    "boss": ROLE_OWNER,
    "ADMIN": ROLE_ACCOUNTANT,
    "OPERATOR": ROLE_SUPERVISOR,
    "supervisor": ROLE_SUPERVISOR,
}


def normalize_role(role) -> str | None:
    if role is None:
        return None
    role = str(role).strip()
    return ROLE_ALIASES.get(role, role)


DEFAULT_ROLE_PERMISSIONS = {
    ROLE_OWNER: [
        # Owner gets ALL permissions
        "VIEW_CLIENTS",
        "MANAGE_CLIENTS",
        "VIEW_PROJECTS",
        "MANAGE_PROJECTS",
        "SET_PROJECT_STATUS",
        "VIEW_PRODUCTION",
        "RECORD_PRODUCTION",
        "RECORD_PRODUCTION_ANY_FACTORY",
        "VIEW_INVOICES",
        "MANAGE_INVOICES",
        "VIEW_ACTIVITY",
        "CLEAR_ACTIVITY",
    ],
    ROLE_ACCOUNTANT: [
        "VIEW_CLIENTS",
        "MANAGE_CLIENTS",
        "VIEW_PROJECTS",
        "MANAGE_PROJECTS",
        "SET_PROJECT_STATUS",
        "VIEW_PRODUCTION",
        "RECORD_PRODUCTION",
        "RECORD_PRODUCTION_ANY_FACTORY",
        "VIEW_INVOICES",
        "MANAGE_INVOICES",
        "VIEW_ACTIVITY",
    ],
    ROLE_SUPERVISOR: [
        # Read-only on clients/projects, own factory for production
        "VIEW_CLIENTS",
        "VIEW_PROJECTS",
        "SET_PROJECT_STATUS",
        "VIEW_PRODUCTION",
        "RECORD_PRODUCTION",
        "VIEW_ACTIVITY",
    ],
}
