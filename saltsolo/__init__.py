"""Masterless Salt provisioner for disposable test instances."""

__version__ = "0.3.0"
