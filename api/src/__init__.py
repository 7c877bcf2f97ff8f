"""FastAPI service for the Business Manager.

This package provides REST API endpoints for customers, vendors, vehicles,
employees, commercial documents, payslips, users and application settings.
"""

__version__ = "0.1.0"
