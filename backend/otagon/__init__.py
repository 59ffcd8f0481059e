"""Otagon gaming companion API."""
