"""Group website-scraping search steps by hostname.

Grouping is a pure projection of the step list: calling it twice on the same
steps yields equal results. Scraping failures that the agent compensated for
(snippet fallback) are shown as successes unless ``soft_failure_presentation``
is turned off; the true status is always kept on the group.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Literal
from urllib.parse import urlparse

from agentstream.client.steps import SearchStep

logger = logging.getLogger(__name__)

SiteStatus = Literal["pending", "success", "error", "fallback"]

_TRUE_STATUS: dict[str, SiteStatus] = {
    "scraping_success": "success",
    "scraping_error": "error",
    "scraping_fallback": "fallback",
}


def hostname_of(raw: str) -> str:
    try:
        host = urlparse(raw).hostname
    except ValueError:
        host = None
    if host:
        return host
    parts = raw.split("/")
    if len(parts) > 2 and parts[2]:
        return parts[2]
    logger.debug("Could not extract hostname from %r", raw)
    return "unknown"


@dataclass
class WebsiteGroup:
    hostname: str
    url: str
    title: str
    steps: list[SearchStep] = field(default_factory=list)
    soft_failure_presentation: bool = True

    @property
    def latest_step(self) -> SearchStep:
        return self.steps[-1]

    @property
    def true_status(self) -> SiteStatus:
        return _TRUE_STATUS.get(self.latest_step.phase or "", "pending")

    @property
    def display_status(self) -> SiteStatus:
        status = self.true_status
        if status in ("error", "fallback") and self.soft_failure_presentation:
            return "success"
        return status

    @property
    def status_label(self) -> str:
        status = self.true_status
        if status == "success":
            length = (self.latest_step.metadata or {}).get("contentLength")
            if isinstance(length, (int, float)) and length > 1000:
                return f"{length / 1000:.1f}k chars"
            return "Content retrieved"
        if status in ("error", "fallback"):
            return "Content retrieved" if self.soft_failure_presentation else "Using snippet"
        return "Extracting..."


def group_websites(
    steps: list[SearchStep], *, soft_failure_presentation: bool = True
) -> dict[str, WebsiteGroup]:
    """Bucket scraping steps by hostname, in order of first sighting."""
    groups: dict[str, WebsiteGroup] = {}
    for step in steps:
        if not step.url or not (step.phase or "").startswith("scraping"):
            continue
        hostname = hostname_of(step.url)
        group = groups.get(hostname)
        if group is None:
            title = (step.metadata or {}).get("title") or hostname
            group = groups[hostname] = WebsiteGroup(
                hostname=hostname,
                url=step.url,
                title=str(title),
                soft_failure_presentation=soft_failure_presentation,
            )
        group.steps.append(step)
    return groups
