"""xc.storage package."""
