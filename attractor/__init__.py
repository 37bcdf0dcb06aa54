"""Attractor: compile declarative workflow files into executable graphs."""

__version__ = "0.1.0"
