"""
Backends package.

- backend.py: one streaming service namespace with its cache components
- registry.py: static name -> implementation registry and loader
"""

from songcache.backends.backend import Backend
from songcache.backends.registry import BACKEND_FACTORIES, create_backend, load_backends

__all__ = ["BACKEND_FACTORIES", "Backend", "create_backend", "load_backends"]
