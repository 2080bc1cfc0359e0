"""
Feature modules.
Each subdirectory carries a ``module.json`` descriptor; modules with server-side
behaviour also ship a ``handlers`` module whose ``register(table)`` fills the
handler registration table.
"""

from modular_admin.modules.customers import handlers as customers
from modular_admin.modules.suppliers import handlers as suppliers

MODULE_PACKAGES = (suppliers, customers)


def register_module_handlers(table) -> None:
    for package in MODULE_PACKAGES:
        package.register(table)
