"""
Core application modules.

This package contains configuration, logging, security and the shared
error taxonomy used across the application.
"""
