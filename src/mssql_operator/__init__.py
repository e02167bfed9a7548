"""
MSSQL Operator - A Kubernetes operator that maintains SQL Server databases.

Each MSSQLDatabase resource requests one database on a SQL Server instance
named by a ConfigMap, using a login stored in a Secret. The operator
creates, renames and drops databases as resources are added, changed and
removed, and recreates tracked databases that disappear.
"""

__version__ = "0.1.0"
