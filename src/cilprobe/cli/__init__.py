"""
cli — command-line interface for cil-probe.

Entry points
────────────
  python -m cilprobe   (via src/cilprobe/__main__.py)
  cil-probe            (via pyproject.toml [project.scripts])
"""
