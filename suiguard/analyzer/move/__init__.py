"""Sui Move analyzers: rule catalog, pattern matcher, capability flows."""
