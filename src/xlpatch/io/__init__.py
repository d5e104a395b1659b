"""File operations for durable saves."""
