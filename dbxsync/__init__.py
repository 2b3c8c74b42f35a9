"""Scheduled Dropbox mirror: copy newer files, archive dated folders, clean up sources."""

__version__ = "0.1.0"
