"""
paperscout: adaptive selector extraction for publication listings.
"""

__version__ = "0.1.0"
