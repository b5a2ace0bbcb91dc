"""Live game domain services: number claims, elimination ticks and timers.

This package contains the state machine of the "Resta Um" game and is
imported by HTTP routes and socket handlers, keeping transport concerns
separated from core game mechanics.
"""
