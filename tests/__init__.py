"""
Testing package for Outreach Automation API.

This package contains:
- Unit tests for the sequence engine building blocks and the workflow compiler
- Integration tests for the engine, scheduler and API endpoints
- Test utilities and fixtures (see conftest.py)
"""
