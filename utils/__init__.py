"""
Shared pure helpers.
"""
