# Overview: Back-office access levels and the permissions each one grants.

ACCESS_OWNER = "owner"
ACCESS_MANAGER = "manager"
ACCESS_STAFF = "staff"
ACCESS_LEVELS = (ACCESS_OWNER, ACCESS_MANAGER, ACCESS_STAFF)

PERM_ORDERS_READ = "orders:read"
PERM_ORDERS_WRITE = "orders:write"
PERM_USERS_READ = "users:read"
PERM_USERS_MANAGE = "users:manage"
PERM_REPORTS_VIEW = "reports:view"
PERM_CAMPAIGNS_MANAGE = "campaigns:manage"
PERM_INVENTORY_MANAGE = "inventory:manage"

ACCESS_LEVEL_PERMISSIONS = {
    ACCESS_OWNER: frozenset({
        PERM_ORDERS_READ,
        PERM_ORDERS_WRITE,
        PERM_USERS_READ,
        PERM_USERS_MANAGE,
        PERM_REPORTS_VIEW,
        PERM_CAMPAIGNS_MANAGE,
        PERM_INVENTORY_MANAGE,
    }),
    ACCESS_MANAGER: frozenset({
        PERM_ORDERS_READ,
        PERM_ORDERS_WRITE,
        PERM_USERS_READ,
        PERM_REPORTS_VIEW,
        PERM_INVENTORY_MANAGE,
    }),
    ACCESS_STAFF: frozenset({PERM_ORDERS_READ, PERM_ORDERS_WRITE}),
}
