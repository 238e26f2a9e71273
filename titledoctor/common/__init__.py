"""Shared plumbing for the pipeline stages: event contracts, the bus and job state."""
