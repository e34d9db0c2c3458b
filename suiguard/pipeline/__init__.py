"""Run-scoped orchestration of the analysis stages."""
