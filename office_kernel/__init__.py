"""
Office Kernel

Tenant-scoped core of the office administration backend:
- Account -> Entity -> User tenancy model
- Access resolution (which Entities an identity may touch)
- Collision-safe sequence and reference-code allocation
- Structured logging and typed errors shared by every layer
"""

__version__ = "0.1.0"
