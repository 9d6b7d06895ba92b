"""
Operational helpers: logging and configuration.
"""
