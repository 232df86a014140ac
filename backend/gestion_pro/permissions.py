"""
Permission codes and default role mappings.

DESIGN PRINCIPLES:
- One action per permission
- Categories group related permissions for display
- Default role mappings follow least privilege; admin has everything
"""


class PermissionCategory:
    CATALOG = "CATALOG"
    STOCK = "STOCK"
    SALES = "SALES"
    RECEIVABLES = "RECEIVABLES"
    ECOMMERCE = "ECOMMERCE"
    USERS = "USERS"
    SYSTEM = "SYSTEM"


# Each permission is defined as: (code, name, description, category)
PERMISSION_DEFINITIONS = [
    ("VIEW_PRODUCTS", "View Products", "List products and prices", PermissionCategory.CATALOG),
    ("MANAGE_PRODUCTS", "Manage Products", "Create, edit, import and delete products", PermissionCategory.CATALOG),
    ("MANAGE_CUSTOMERS", "Manage Customers", "Create, edit and delete customers", PermissionCategory.CATALOG),
    ("MANAGE_SUPPLIERS", "Manage Suppliers", "Create, edit and delete suppliers", PermissionCategory.CATALOG),

    ("VIEW_STOCK", "View Stock", "View per-branch and consolidated stock", PermissionCategory.STOCK),
    ("MANAGE_BRANCHES", "Manage Branches", "Create, edit, reorder and delete branches", PermissionCategory.STOCK),

    ("CREATE_SALE", "Create Sale", "Issue invoices, quotes and reservations", PermissionCategory.SALES),
    ("VIEW_DOCUMENTS", "View Documents", "List and open sales documents", PermissionCategory.SALES),
    ("CANCEL_RESERVATION", "Cancel Reservation", "Cancel a reservation and restore its stock", PermissionCategory.SALES),

    ("VIEW_RECEIVABLES", "View Receivables", "View customer debt and open invoices", PermissionCategory.RECEIVABLES),
    ("APPLY_PAYMENTS", "Apply Payments", "Register payments against open invoices", PermissionCategory.RECEIVABLES),

    ("MANAGE_ECOMMERCE", "Manage E-commerce", "Configure integrations and ingest storefront orders", PermissionCategory.ECOMMERCE),

    ("VIEW_USERS", "View Users", "List users and roles", PermissionCategory.USERS),
    ("MANAGE_USERS", "Manage Users", "Invite and deactivate users", PermissionCategory.USERS),
    ("MANAGE_ROLES", "Manage Roles", "Create, edit and delete roles", PermissionCategory.USERS),

    ("MANAGE_SETTINGS", "Manage Settings", "Edit business configuration", PermissionCategory.SYSTEM),
    ("VIEW_AUDIT_LOG", "View Audit Log", "View security events", PermissionCategory.SYSTEM),
]


DEFAULT_ROLE_PERMISSIONS = {
    "admin": [code for code, _name, _desc, _cat in PERMISSION_DEFINITIONS],

    "manager": [
        "VIEW_PRODUCTS",
        "MANAGE_PRODUCTS",
        "MANAGE_CUSTOMERS",
        "MANAGE_SUPPLIERS",
        "VIEW_STOCK",
        "CREATE_SALE",
        "VIEW_DOCUMENTS",
        "CANCEL_RESERVATION",
        "VIEW_RECEIVABLES",
        "APPLY_PAYMENTS",
        "MANAGE_ECOMMERCE",
        "VIEW_USERS",
    ],

    "seller": [
        # Counter staff: sell and look things up
        "VIEW_PRODUCTS",
        "VIEW_STOCK",
        "CREATE_SALE",
        "VIEW_DOCUMENTS",
        "MANAGE_CUSTOMERS",
    ],
}

