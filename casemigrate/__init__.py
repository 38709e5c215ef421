"""
Case Migration Application

Imports case data exported from other ethics and compliance platforms.

Supports:
- Source system detection (NAVEX, EQS, legacy Ethico, OneTrust, STAR, generic CSV)
- CSV and XLSX files, streamed row by row
- Field mapping suggestions and reusable mapping templates
- Row validation and transformed previews
- Job lifecycle tracking with a time-boxed rollback
"""

__version__ = "0.1.0"
