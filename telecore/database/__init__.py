"""
Database package: declarative base, connection management and models.
"""
