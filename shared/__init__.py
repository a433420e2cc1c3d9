"""Types shared by the host-side orchestrator and the execution server."""
