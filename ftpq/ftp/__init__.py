"""FTP operations module for ftpq.

This module handles all FTP-related functionality:
- ControlChannel: Command framing and status reply decoding
- ControlSession: Control connection, AUTH TLS, login and one-shot commands
- Data connections: PASV/EPSV negotiation, RETR/STOR/LIST/NLST streams
- Listing parsers: RFC 3659, Unix and DOS LIST line decoders
- multiple_transfer: Parallel transfers over cloned sessions
- Exceptions: FTP-specific error types
"""
