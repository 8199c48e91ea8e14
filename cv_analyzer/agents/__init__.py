"""Analysis pipeline: prompt builder, AI client, orchestrator and task runner."""

from cv_analyzer.agents.ai_client import AIClient, AnalysisOutcome
from cv_analyzer.agents.orchestrator import AnalysisPipeline
from cv_analyzer.agents.prompts import build_analysis_prompt
from cv_analyzer.agents.runner import AnalysisTaskRunner

__all__ = [
    "AIClient",
    "AnalysisOutcome",
    "AnalysisPipeline",
    "AnalysisTaskRunner",
    "build_analysis_prompt",
]
