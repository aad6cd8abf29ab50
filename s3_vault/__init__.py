"""Folder-aware browsing and bulk transfers for S3-compatible buckets."""
