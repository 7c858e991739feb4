"""
Telecore: order lifecycle, pricing and billing engine for telecom numbers.
"""

__version__ = "1.0.0"
