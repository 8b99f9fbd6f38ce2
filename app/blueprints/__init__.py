"""
Elevator Workspace
Blueprint registry.
"""
