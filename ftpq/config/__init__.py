"""Configuration module for ftpq.

This module handles application settings and credentials:
- SettingsManager: JSON-based settings persistence
- CredentialManager: Secure credential storage via keyring
- Paths: Configuration and log directory discovery
- AppSettings: Settings dataclass
"""
