"""Kubernetes operator for Apicurio Studio."""

__version__ = "0.1.0"
