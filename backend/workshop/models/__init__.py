from .tenancy import Organization, User, OrganizationMember, SessionToken, ROLE_OWNER, ROLE_MEMBER, ROLES
from .materials import Material, MaterialReceipt, MaterialWriteOff
from .products import Product, RecipeItem
from .production import (
    Production,
    FinishedProduct,
    BatchSequence,
    FINISHED_STATUS_IN_STOCK,
    FINISHED_STATUS_SOLD,
    FINISHED_STATUS_WRITTEN_OFF,
    FINISHED_STATUSES,
)
from .history import (
    OperationHistory,
    CANCELLABLE_OPERATIONS,
    OP_MATERIAL_CREATE,
    OP_MATERIAL_UPDATE,
    OP_MATERIAL_DELETE,
    OP_RECEIPT_CREATE,
    OP_RECEIPT_UPDATE,
    OP_RECEIPT_DELETE,
    OP_PRODUCT_CREATE,
    OP_PRODUCT_UPDATE,
    OP_PRODUCT_DELETE,
    OP_PRODUCTION_CREATE,
    OP_PRODUCTION_CANCEL,
    OP_PRODUCTION_DELETE,
    OP_SALE,
    OP_WRITE_OFF,
    OP_RETURN_TO_STOCK,
    OP_FINISHED_PRODUCT_UPDATE,
)

__all__ = [
    'Organization', 'User', 'OrganizationMember', 'SessionToken',
    'ROLE_OWNER', 'ROLE_MEMBER', 'ROLES',
    'Material', 'MaterialReceipt', 'MaterialWriteOff',
    'Product', 'RecipeItem',
    'Production', 'FinishedProduct', 'BatchSequence',
    'FINISHED_STATUS_IN_STOCK', 'FINISHED_STATUS_SOLD', 'FINISHED_STATUS_WRITTEN_OFF', 'FINISHED_STATUSES',
    'OperationHistory', 'CANCELLABLE_OPERATIONS',
    'OP_MATERIAL_CREATE', 'OP_MATERIAL_UPDATE', 'OP_MATERIAL_DELETE',
    'OP_RECEIPT_CREATE', 'OP_RECEIPT_UPDATE', 'OP_RECEIPT_DELETE',
    'OP_PRODUCT_CREATE', 'OP_PRODUCT_UPDATE', 'OP_PRODUCT_DELETE',
    'OP_PRODUCTION_CREATE', 'OP_PRODUCTION_CANCEL', 'OP_PRODUCTION_DELETE',
    'OP_SALE', 'OP_WRITE_OFF', 'OP_RETURN_TO_STOCK', 'OP_FINISHED_PRODUCT_UPDATE',
]
