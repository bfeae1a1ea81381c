"""
School ERP backend.

Authentication, tenant-scoped authorization and finance records for
multi-school deployments.
"""

__version__ = "0.1.0"
