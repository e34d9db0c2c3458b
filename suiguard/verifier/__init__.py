"""Post-model verification: evidence validation and confidence scoring.

Both stages are pure functions of their inputs; the orchestrator owns the
run's metrics collector and passes it in.
"""
