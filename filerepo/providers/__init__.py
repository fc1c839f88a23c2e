"""Concrete implementations of the interfaces in ``filerepo.interfaces``."""
