"""
Utils package - Utility modules for MSSQL operator functionality.

Contains helper modules for:
- Kubernetes client configuration
- Resolving SQL Server credentials from ConfigMaps and Secrets
"""

from mssql_operator.utils.credentials import CredentialResolver
from mssql_operator.utils.kubernetes import load_kubernetes_config

__all__ = [
    "CredentialResolver",
    "load_kubernetes_config",
]
