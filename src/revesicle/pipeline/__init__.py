"""Phase state machine: settings, staging, per-phase entry functions and the orchestrator."""
