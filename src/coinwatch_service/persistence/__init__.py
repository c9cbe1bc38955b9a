from .analysis_snapshots import AnalysisSnapshotStore, CachedAnalysisSummary

__all__ = ["AnalysisSnapshotStore", "CachedAnalysisSummary"]
