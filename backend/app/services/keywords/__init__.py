"""Simulated keyword research: topic extraction and metric estimation."""
