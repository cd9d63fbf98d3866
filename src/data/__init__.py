"""Data loading, wrangling and visualization utilities.

This package provides functions for exploring gene expression tables, including:
- File I/O for delimited differential expression, counts and TF family tables
- Tidy verbs (select, filter, mutate, pivot, group/summarize, join)
- Generic data filtering and parallel processing utilities
- Visualization tools for differential expression and count data
"""
