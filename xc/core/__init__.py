"""
Core modules for xc.

This package contains credential resolution, budget enforcement,
the password lock, cost tables and spend aggregation.
"""
