"""NestLab - sheet material nesting optimizer."""

__version__ = "0.1.0"
