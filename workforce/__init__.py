"""
Workforce - Gestión de personal
Attendance kiosk, payroll liquidation and HR administration backend.
"""

__version__ = "0.1.0"
