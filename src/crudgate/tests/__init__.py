"""
Test package for crudgate.

- test_sanitize.py / test_validators.py: identifier and option validation
- test_filter.py / test_sort.py / test_pagination.py / test_options.py: request parsing
- test_builder.py: SQL statement building
- test_permission_filters.py: filter tree compiler
- test_store.py / test_cache.py / test_checker.py: policies and permission checks
- test_dependencies.py: FastAPI permission dependency
- test_service.py: collection service against SQLite
- test_cli.py: command line interface
- test_ambient.py: settings, exceptions and database sessions
"""
