"""Heuristic progress estimates for the thinking/search panels.

These are display estimates. They follow a fixed precedence over the latest
steps and are not guaranteed to increase monotonically across a stream.
"""

from __future__ import annotations

from typing import NamedTuple

from agentstream.client.grouping import group_websites
from agentstream.client.steps import SearchStep, ThinkingStep


class ProgressEstimate(NamedTuple):
    phase_label: str
    progress_percent: int


def estimate_progress(
    thinking_steps: list[ThinkingStep], search_steps: list[SearchStep]
) -> ProgressEstimate:
    """Overall phase label and percentage; first matching rule wins."""
    if search_steps:
        latest = search_steps[-1]
        if latest.phase == "search_complete":
            return ProgressEstimate("Synthesizing comprehensive response…", 90)
        if latest.type == "complete":
            return ProgressEstimate("Research complete, preparing response…", 85)
        if any(step.url for step in search_steps):
            return ProgressEstimate("Extracting information from sources…", 60)
        if latest.phase == "results_found":
            return ProgressEstimate("Found results, analyzing content…", 40)
        return ProgressEstimate("Searching for current information…", 30)

    if thinking_steps and thinking_steps[-1].phase == "tool_consideration":
        return ProgressEstimate("Determining research approach…", 20)
    return ProgressEstimate("Analyzing your question…", 10)


def search_panel_progress(search_steps: list[SearchStep]) -> float:
    """Progress bar value for the search panel, 0-100."""
    if not search_steps:
        return 0
    latest = search_steps[-1]
    if latest.phase == "search_start":
        return 10
    if latest.phase == "results_found":
        return 25

    websites = group_websites(search_steps)
    if websites:
        share = 0.0
        for site in websites.values():
            if site.true_status == "success":
                share += 1
            elif site.true_status == "error":
                share += 0.5
            else:
                share += 0.25
        return 25 + (share / len(websites)) * 65

    if latest.phase == "search_complete":
        return 100
    return latest.progress or 10


def search_status_text(search_steps: list[SearchStep]) -> str:
    if not search_steps:
        return ""
    latest = search_steps[-1]
    phase = latest.phase
    if phase == "search_start":
        return "Starting search..."
    if phase == "results_found":
        return f"Found {(latest.metadata or {}).get('totalResults') or 0} results"
    if phase == "search_complete":
        return "Search complete"
    if any(step.url and (step.phase or "").startswith("scraping") for step in search_steps):
        return "Extracting website content..."
    return {
        "planning": "Planning search...",
        "start": "Searching web...",
        "progress": "Processing results...",
        "analysis": "Analyzing information...",
        "complete": "Search complete",
    }.get(latest.type, "Searching...")


def tool_label(tool: str) -> str:
    if tool == "comprehensive_search":
        return "Deep Research"
    if tool == "web_search":
        return "Web Search"
    return tool.replace("_", " ")
