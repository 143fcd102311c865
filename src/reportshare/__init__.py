"""Slug-addressed PDF and Excel hosting."""
