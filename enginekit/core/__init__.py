"""Core primitives shared by applications and engines.

Modules in this package know nothing about engines themselves and focus on
configuration, initializer ordering, middleware, static files, small HTTP
helpers and validation.
"""
