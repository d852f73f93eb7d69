"""
Engines: SQL (raw query execution against the target database).
"""
