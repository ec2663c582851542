"""
Rollups node - launches and supervises the rollups service binaries.
"""

__version__ = "0.1.0"
