"""
PayDesk - Payroll roster synchronisation and salary document generation.
"""

__version__ = "0.1.0"
