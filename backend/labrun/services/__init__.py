"""Execution engine services."""
