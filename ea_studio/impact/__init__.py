"""Read-only impact analysis over imported dependency edges."""
from ea_studio.impact.analysis import ImpactIndicators, ImpactResult, compute_impact_analysis, explain_impact

__all__ = ["ImpactIndicators", "ImpactResult", "compute_impact_analysis", "explain_impact"]
