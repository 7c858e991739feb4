"""
Number allocation and disconnection workflow.
"""
