"""
fpm - a small npm-compatible package manager
"""

__version__ = "0.1.0"
