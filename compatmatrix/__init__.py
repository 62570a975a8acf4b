"""compatmatrix — audit and repair component version drift against a compatibility matrix."""

__version__ = "0.1.0"
