"""Course Player: lecture delivery with a managed content runtime."""

__version__ = "0.1.0"
