from .tenant import Tenant
from .user import User
from .module import Module, Permission, ModuleField
from .role import Role, UserRole, RolePermission
from .module_permission import RoleModuleAccess, RoleModulePermission, RoleFieldPermission
from .supplier import Supplier
from .customer import Customer
