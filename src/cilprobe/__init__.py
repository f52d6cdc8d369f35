"""cil-probe — static recovery of constant member values from .NET modules."""

__version__ = "0.1.0"
