"""
Autoposter - pipeline orchestrator for the article posting workflow
"""

__version__ = "0.1.0"
