from .tenancy import Organization, Branch
from .catalog import Product, BranchStock
from .parties import Customer, Supplier
from .documents import SaleDocument, SaleDocumentLine, PaymentApplication, DocumentSequence
from .ecommerce import EcommerceIntegration, EcommerceOrder, EcommerceOrderLine, SyncLog
from .auth import User, Role, UserRole, Permission, RolePermission, SessionToken
from .security import SecurityEvent

__all__ = [
    'Organization', 'Branch',
    'Product', 'BranchStock',
    'Customer', 'Supplier',
    'SaleDocument', 'SaleDocumentLine', 'PaymentApplication', 'DocumentSequence',
    'EcommerceIntegration', 'EcommerceOrder', 'EcommerceOrderLine', 'SyncLog',
    'User', 'Role', 'UserRole', 'Permission', 'RolePermission', 'SessionToken',
    'SecurityEvent',
]
