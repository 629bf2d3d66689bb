"""
Workforce Kernel - contract, invoice and timesheet lifecycle core.

A multi-tenant lifecycle kernel with:
- Table-driven workflows for contracts, invoices and timesheets
- Scope-based visibility (global, own company, parent)
- Participant approvals and signatures
- Append-only remittance ledger
"""

__version__ = "0.1.0"
