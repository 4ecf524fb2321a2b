"""
Infrastructure layer: configuration, dependency wiring, seed data and
process entrypoints.
"""
