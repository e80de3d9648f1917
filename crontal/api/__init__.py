"""HTTP surface: buyer/supplier routes, health, static frontend."""
