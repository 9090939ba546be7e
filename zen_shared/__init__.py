"""
Shared building blocks for the Zen session client.

This package contains the exception hierarchy, message models, collaborator
interfaces and logging configuration used by the client package.
"""
