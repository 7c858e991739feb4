"""
Prepaid wallet ledger.
"""
