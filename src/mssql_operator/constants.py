"""
Constants used throughout the MSSQL database operator.

This module defines all constant values used by the operator including:
- Custom resource coordinates
- Required keys in the referenced ConfigMap and Secret
- SQL Server error numbers that mark an operation as already converged
- Error message templates
"""

import logging
import os

# Custom resource coordinates
CRD_GROUP = "samples.k8s-dotnet-controller-sdk"
CRD_VERSION = "v1"
CRD_PLURAL = "mssqldbs"
RESOURCE_TYPE = "mssqldb"

# Required data keys in referenced resources
CONFIG_MAP_INSTANCE_KEY = "instance"
SECRET_USER_ID_KEY = "userid"
SECRET_PASSWORD_KEY = "password"

# Server-level catalog used to create, drop and rename other databases
DEFAULT_ADMIN_CATALOG = "master"

# SQL Server error numbers
SQL_ERROR_DATABASE_EXISTS = 1801
SQL_ERROR_DATABASE_NOT_FOUND = 3701

# Watch event types delivered by the Kubernetes API
EVENT_ADDED = "ADDED"
EVENT_MODIFIED = "MODIFIED"
EVENT_DELETED = "DELETED"
EVENT_ERROR = "ERROR"
EVENT_BOOKMARK = "BOOKMARK"

# Default configuration values
DEFAULT_RECHECK_INTERVAL = 60
DEFAULT_LOGIN_TIMEOUT = 30

# Error message templates
ERROR_CONFIG_MAP_NOT_FOUND = "ConfigMap '{}' not found in namespace {}"
ERROR_SECRET_NOT_FOUND = "Secret '{}' not found in namespace {}"
ERROR_CONFIG_MAP_MISSING_KEY = (
    "ConfigMap '{}' does not contain the '{}' data property."
)
ERROR_SECRET_MISSING_KEY = "Secret '{}' does not contain the '{}' data property."
ERROR_SECRET_UNDECODABLE = "Secret '{}' property '{}' is not valid UTF-8 text."

# Handler entry logging (set HANDLER_ENTRY_LOG_LEVEL=DEBUG to reduce noise)
HANDLER_ENTRY_LOG_LEVEL = getattr(
    logging, os.getenv("HANDLER_ENTRY_LOG_LEVEL", "INFO").upper(), logging.INFO
)
