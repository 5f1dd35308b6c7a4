"""Host provisioning for the BOINC BUDA runner on Windows."""

__version__ = "0.1.0"
