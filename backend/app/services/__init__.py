"""Execution server services."""
