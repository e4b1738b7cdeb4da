"""Service layer implementations."""
