"""
Common utilities and shared modules.
"""
