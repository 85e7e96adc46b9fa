"""Data models for the notelens search engine."""
