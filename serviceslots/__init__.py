"""
Appointment slot scheduling and capacity validation for a vehicle service center.
"""

__version__ = "0.1.0"
