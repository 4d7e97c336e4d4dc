"""PairGate - pairing code service for linking devices to a messaging account."""

__version__ = "1.0.0"
