"""Match scheduling, adaptive pairing and elimination brackets for alliance tournaments."""

__version__ = "0.1.0"
