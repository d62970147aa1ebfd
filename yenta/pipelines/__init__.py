"""Request pipelines for prospect intake, qualification turns and round gating.

Each step is callable independently so the API, scripts and tests can share
them.
"""
