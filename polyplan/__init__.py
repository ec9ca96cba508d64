"""
Polyhouse Planner - greenhouse placement optimizer and planning API.
"""
__version__ = "0.1.0"
