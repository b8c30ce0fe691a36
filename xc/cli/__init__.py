"""xc.cli package."""
