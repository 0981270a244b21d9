"""
Shared helpers: header text normalization and cell value coercion.
"""
