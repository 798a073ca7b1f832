"""Business logic layer for files app.

This package contains all business logic for the file lifecycle:
- Upload, download, delete and listing of files
- Folder hierarchy: create, list, rename with subtree rewrite, delete
- Quota accounting and audits
- Pagination of listings

All business logic should be implemented here, separate from
models (data layer) and infrastructure (external systems).
"""
