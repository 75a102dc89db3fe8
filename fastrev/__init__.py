"""
fastrev: adaptive learning engine of the FastRev Kids platform.

Packages:
- core: mastery primitives and errors
- graph: competence graph and curriculum loading
- delivery: state store and revision scheduler
- adaptive: evaluator, learning path builder and engine facade
- cli: curriculum and scheduling commands
"""

__version__ = "1.0.0"
