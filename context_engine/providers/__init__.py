"""Concrete adapters for the interfaces in :mod:`context_engine.interfaces`."""
