"""
Core configuration, logging, error and locking utilities.
"""
