"""
Feature modules live under this package.

Each module owns its models, service functions and API blueprint, and reuses
the platform primitives (auth, RBAC, audit, timeline, storage, DB session).
"""
