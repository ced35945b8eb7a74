"""
Core pipeline pieces: record helpers, error taxonomy and the orchestrator.
"""
