"""ftpq: FTP/FTPS client with parallel multi-file transfers."""

__version__ = "0.1.0"
