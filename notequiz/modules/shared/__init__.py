"""Shared service-layer building blocks and the domain error taxonomy."""
