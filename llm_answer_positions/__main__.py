"""
Entry point for running LLM Answer Positions as a module.

Enables execution via:
    python -m llm_answer_positions [command] [options]

This is equivalent to running the installed CLI:
    llm-answer-positions [command] [options]

Examples:
    python -m llm_answer_positions --help
    python -m llm_answer_positions extract --config examples/positions.config.yaml
    python -m llm_answer_positions validate --config config.yaml
"""

from llm_answer_positions.cli import app

if __name__ == "__main__":
    app()
