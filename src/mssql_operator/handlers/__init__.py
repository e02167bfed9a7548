"""
Handlers package - Contains the Kopf event handlers for MSSQLDatabase resources.

- database.py: MSSQLDatabase create/resume, update and delete handlers
"""
