"""Skill sandbox execution server (runs inside each environment)."""
