"""Workbook loading, value conversion, merge and envelope dispatch."""
