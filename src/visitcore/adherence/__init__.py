# src/visitcore/adherence/__init__.py
from visitcore.adherence.calculator import AdherenceResult, compute_adherence
from visitcore.adherence.problems import Problem, detect_problems

__all__ = ["AdherenceResult", "Problem", "compute_adherence", "detect_problems"]
