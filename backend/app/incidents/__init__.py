"""
incidents — Lifecycle tracking for issued alerts.

Sub-modules:
    models    — Incident, lifecycle and follow-up records
    service   — In-memory store and lifecycle transitions
"""
