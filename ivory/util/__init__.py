"""Contains utilities that are not specific to Ivory's domain of PostgreSQL access."""

import lazy_loader

__getattr__, __dir__, __all__ = lazy_loader.attach_stub(
    __name__,
    __file__,
)
