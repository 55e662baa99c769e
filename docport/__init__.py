"""
docport: streaming bulk import and export for document collections.
"""

__version__ = "0.1.0"
