"""
Feature modules live under this package.

Each module owns its models, persistence service and handlers, and reuses the
platform primitives (router, guards, audit, DB session).
"""
