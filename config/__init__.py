"""Configuration loading for the remote healthcare registry."""
