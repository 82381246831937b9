"""Configuration, constants and logging."""
