"""
Authentication package for the Zen session client.

This package contains authentication-related functionality including
secure token storage and the token provider driving the login exchange.
"""
