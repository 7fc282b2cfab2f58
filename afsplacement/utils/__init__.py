"""
Logging and configuration shared by every component.
"""
