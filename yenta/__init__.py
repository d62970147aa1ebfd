"""Backend package: DB models, qualification core, pipelines, APIs.

This package orchestrates prospect intake, field extraction, the staged
qualification flow, round gating and data-quality reporting.
"""
