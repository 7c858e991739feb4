"""
Service layer package initialization.

Each subpackage holds one domain service operating on an AsyncSession.
"""
