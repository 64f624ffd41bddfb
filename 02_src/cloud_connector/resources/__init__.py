"""Embedded traces and configuration documents."""
