"""HTTP routes of the execution server."""
