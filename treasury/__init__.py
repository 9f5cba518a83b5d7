"""
Umbra treasury package.
"""
