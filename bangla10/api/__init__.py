"""Progress HTTP service."""
