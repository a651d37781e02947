"""Library Desk - Lending Application Package

This package contains the application modules including:
- Lending lifecycle: issue, return, fines (lending.py)
- Book catalog and user roster (catalog.py, roster.py)
- Data models (book.py, user.py)
- Storage backends (store.py, database.py, file_store.py)
- API endpoints (api.py)
- CLI interface (main.py)
"""
