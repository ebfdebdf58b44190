"""Road-safety violation service: vehicle registry, violation ledger and fine payments."""

__version__ = "1.0.0"
