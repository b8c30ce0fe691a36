"""xc.config package."""
