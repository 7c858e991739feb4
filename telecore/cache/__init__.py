"""
Redis cache package initialization.
"""
