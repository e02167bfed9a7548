"""
Tests package - Test suite for the MSSQL operator.

Contains:
- unit/: Unit tests for individual components
"""
