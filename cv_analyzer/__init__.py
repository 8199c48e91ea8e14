"""
CV Analyzer Backend.

Core components:
- api: Upload intake, results/history/analytics endpoints
- agents: Prompt builder, AI client, analysis pipeline, task runner
- tools: PDF text extractor, file storage
- db: Analysis record store
"""
