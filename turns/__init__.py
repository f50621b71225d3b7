"""
Turns - appointment slot availability and booking engine for service businesses.
"""

__version__ = "0.1.0"
