"""Match domain services: scoring, locks, lifecycle, leg progression and stats.

Imported by the HTTP blueprints so that request parsing and response
rendering stay separate from the rules of a darts match.
"""
