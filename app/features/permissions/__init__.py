"""
Permission engine.

Decides whether a principal may perform an action on a module by combining
role grants, per-user overrides and legacy name aliases, behind a
TTL-bounded cache that is invalidated on every write.
"""
