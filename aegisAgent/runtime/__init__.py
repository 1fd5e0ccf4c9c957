"""Runtime assembly: orchestrator, agent loop and application wiring."""
