"""Tabular views of plan outputs for reporting collaborators."""
