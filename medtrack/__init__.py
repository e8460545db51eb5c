"""Core domain logic for medication scheduling and adherence tracking.

This package contains the business logic and domain models,
isolated from persistence and UI concerns for easy testing and reasoning.
"""
