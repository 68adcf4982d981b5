"""Game domain services: rooms, questions, scoring, orchestration and timers.

This package contains the core game mechanics that HTTP routes and socket
handlers call into, keeping transport concerns separated from room state.
"""
