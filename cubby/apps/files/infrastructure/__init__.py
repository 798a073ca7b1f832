"""Infrastructure layer for files app.

This package contains integrations with external systems:
- Object store adapter for S3-compatible backends (S3/MinIO/R2)
- MIME type allow-list
- Metadata helpers (object keys, names, paths)

Keep infrastructure concerns separate from business logic.
"""
