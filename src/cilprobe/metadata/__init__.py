"""Read-only view of a compiled .NET module (see models.py and base.py)."""
