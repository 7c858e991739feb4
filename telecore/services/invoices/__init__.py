"""
Invoice generation, usage correction and scheduled invoice jobs.
"""
