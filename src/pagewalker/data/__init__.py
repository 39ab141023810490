"""Bundled demo content."""
