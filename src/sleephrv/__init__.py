"""sleephrv: overnight HRV artifact handling and recovery window selection."""

__version__ = "0.1.0"
