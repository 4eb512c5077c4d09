"""Geopic backend: remote crawl, local index store and map query routes."""
