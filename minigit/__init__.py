"""A small content-addressed version control engine."""

__version__ = '0.1.0'
