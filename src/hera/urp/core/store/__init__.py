# hera/urp/core/store/__init__.py
"""Entity store client implementations."""

from hera.urp.core.store.http import HttpEntityStoreClient

__all__ = ["HttpEntityStoreClient"]
