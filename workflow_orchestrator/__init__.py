"""Workflow Orchestrator - dependency-ordered execution of workflow graphs."""

__version__ = "1.0.0"
