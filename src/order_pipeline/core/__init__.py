"""
Core domain models, numerical primitives, contracts and ambient services.

Independent of any concrete exchange: everything external is reached
through the adapter, config provider and diagnostics sink interfaces.
"""
