"""
Utilities - credentials, key conversion, cache paths and logging setup.
"""
