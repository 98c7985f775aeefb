"""Room domain services: codes, storage, question sets, scoring and the lifecycle controller.

Routes and socket handlers import from here; nothing in this package
knows about HTTP.
"""
