"""Meeting availability, slot selection and booking for the Waraqa dashboard."""

__version__ = "0.1.0"
