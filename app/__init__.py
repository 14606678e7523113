"""Bevvi Order Dashboard backend"""

__version__ = "1.0.0"
