"""Core sync logic package."""
