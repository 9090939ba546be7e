"""
Zen session client.

This package contains the client-side session layer: session state, Connect
transports, service clients, token handling and the error boundary used by
user-triggered operations.
"""
