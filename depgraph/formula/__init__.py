"""
Formula reference extraction.

Turns spreadsheet formulas into the cells and ranges they read, which is what
callers feed into a DependencyGraph as edges.
"""
from .extract import FormulaReferences, extract_cells_and_ranges

__all__ = ["FormulaReferences", "extract_cells_and_ranges"]
