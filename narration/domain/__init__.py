"""
Domain Layer

Entities, value objects, events and ports of the narration pipeline.
Nothing in this package imports infrastructure.
"""
