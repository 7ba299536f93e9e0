"""
Default permission catalog and role presets, seeded by scripts.seed_permissions.
"""
from app.features.permissions.keys import PermissionKey
from app.features.permissions.templates import GRID_ACTIONS


MODULES: tuple[str, ...] = (
    "trucks",
    "trailers",
    "drivers",
    "equipment",
    "job_cards",
    "fuel",
    "maintenance",
    "compliance",
    "invoices",
    "bookings",
    "users",
    "activity_logs",
    "reports",
)

ACTION_DESCRIPTIONS: dict[str, str] = {
    "view": "View {module}",
    "create": "Add new {module}",
    "edit": "Modify {module}",
    "delete": "Delete {module}",
    "approve": "Approve or reject {module}",
}

# Stored names that differ from the grid names; fuel entries are recorded, not created
EXTRA_PERMISSIONS: tuple[tuple[str, str, str], ...] = (
    ("fuel", "record", "Record fuel transactions"),
)

# Template applied to each role on first seed
DEFAULT_ROLE_TEMPLATES: dict[str, str] = {
    "admin": "admin",
    "finance": "finance",
    "staff": "staff",
    "driver": "driver",
}


def default_permissions() -> list[tuple[PermissionKey, str]]:
    """Catalog rows: every module x grid action, plus the extra stored actions."""
    rows = [
        (PermissionKey(module, action), ACTION_DESCRIPTIONS[action].format(module=module.replace("_", " ")))
        for module in MODULES
        for action in GRID_ACTIONS
    ]
    rows.extend((PermissionKey(module, action), description) for module, action, description in EXTRA_PERMISSIONS)
    return rows
