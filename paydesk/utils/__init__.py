"""
PayDesk - Utilities
"""
