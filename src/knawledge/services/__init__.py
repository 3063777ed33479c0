"""Synchronization and document resolution services."""
