"""
PayDesk - Routers Package

FastAPI route handlers.

Routers:
- accounts: owner accounts
- employees: roster import/export and employee maintenance
- salary_slips: salary slips, period copy, PDFs and period archives
- invoices: invoices, status changes, stats, PDFs and period archives
"""
