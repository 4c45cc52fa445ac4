"""Money movement: three-stage payment transaction orchestration."""

__version__ = "0.1.0"
