"""
Data export and analysis pipeline: source connectors, transformers,
analyzers and file exporters.
"""
__version__ = "1.0.0"
