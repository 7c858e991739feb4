"""
Order lifecycle service package initialization.
"""
