"""
dbbackup - scheduled logical MySQL backups shipped to S3.
"""

__version__ = "1.0.0"
