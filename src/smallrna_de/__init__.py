"""
Serum vs PAXgene small RNA differential expression.
"""

__version__ = "0.1.0"
