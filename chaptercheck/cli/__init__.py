"""Command line interface for ChapterCheck."""
