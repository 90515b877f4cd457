"""
Helpers that are not specific to GitOpsSets.
"""
