"""Core configuration, logging, errors and shared utilities."""
