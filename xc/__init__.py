"""
xc - command-line client for the X API v2.

Credential resolution, budget enforcement and usage tracking live in
``xc.core``; persistence in ``xc.config`` and ``xc.storage``.
"""

__version__ = "0.1.0"
