"""Care Scheduling API: provider-payer bookability and slot generation"""

__version__ = "0.1.0"
