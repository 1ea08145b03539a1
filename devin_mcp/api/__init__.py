from . import setup

__all__ = [
    "setup",
]
