"""
Pricing catalog, relevant field table and order pricing snapshots.
"""
