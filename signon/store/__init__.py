"""Persistence layer: users + sessions in Postgres.

Postgres drivers are imported lazily inside functions so the auth helpers can be
imported (and unit tested) without DB dependencies.
"""

from __future__ import annotations
