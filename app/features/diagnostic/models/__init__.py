"""
Diagnostic models package.
"""
from app.features.diagnostic.models.analysis import Analysis, AnalysisStatus, Stage

__all__ = ["Analysis", "AnalysisStatus", "Stage"]
