"""
Docflow

Multi-stage document approval workflow engine with stage scheduling,
delegation, escalation tracking and an activity trail per document.
"""

__version__ = "1.0.0"
