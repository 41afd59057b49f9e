# Overview: Permission codes and the default permission set of each role.
# Each permission is defined as: (code, name, description)

PERMISSION_DEFINITIONS = [
    (
        "VIEW_TILL",
        "View Till",
        "View active shift, shift history and tables pending collection",
    ),
    (
        "OPERATE_TILL",
        "Operate Till",
        "Open and close own shifts, record till movements, bill sales",
    ),
    (
        "SUPERVISE_TILL",
        "Supervise Till",
        "Close other users' shifts, force-close shifts, authorize high-value movements",
    ),
    (
        "MANAGE_REPORT_RECIPIENTS",
        "Manage Report Recipients",
        "Edit the daily report recipient list",
    ),
    (
        "SYSTEM_ADMIN",
        "System Admin",
        "Full system administration",
    ),
]

# Elevated role marker for shift closure and movement authorization.
ELEVATED_PERMISSION = "SUPERVISE_TILL"

DEFAULT_ROLE_PERMISSIONS = {
    "admin": [code for code, _, _ in PERMISSION_DEFINITIONS],
    "supervisor": ["VIEW_TILL", "OPERATE_TILL", "SUPERVISE_TILL", "MANAGE_REPORT_RECIPIENTS"],
    "cashier": ["VIEW_TILL", "OPERATE_TILL"],
    "waiter": ["VIEW_TILL"],
}

DEFAULT_ROLE_DESCRIPTIONS = {
    "admin": "Full access",
    "supervisor": "Till supervision and overrides",
    "cashier": "Till operation",
    "waiter": "Floor service, read-only till access",
}
