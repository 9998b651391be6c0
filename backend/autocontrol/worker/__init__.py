"""Background task worker."""
