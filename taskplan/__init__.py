"""
taskplan - turn a PRD and architecture document into a numbered
implementation task list and a traceability matrix.
"""

__version__ = "0.1.0"
