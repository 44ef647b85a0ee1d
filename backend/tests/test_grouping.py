"""Tests for website grouping."""

from __future__ import annotations

from agentstream.client.grouping import group_websites, hostname_of
from agentstream.client.steps import SearchStep


def scrape(url: str | None, phase: str | None, **extra) -> SearchStep:
    metadata = {"phase": phase, **extra} if phase else None
    return SearchStep(
        id=f"{url}-{phase}",
        type="progress",
        tool="web_search",
        content="scraping",
        url=url,
        timestamp=0.0,
        metadata=metadata,
    )


class TestHostname:
    def test_parsed(self):
        assert hostname_of("https://news.example.com/a/b?q=1") == "news.example.com"

    def test_fallback_to_path_segment(self):
        assert hostname_of("weird//segment/rest") == "segment"

    def test_unparseable_ipv6(self):
        assert hostname_of("http://[::1/oops") == "[::1"

    def test_unknown(self):
        assert hostname_of("no-slashes-here") == "unknown"


class TestGroupWebsites:
    def test_filters_non_scraping_steps(self):
        steps = [
            scrape("https://a.com", "search_start"),
            scrape(None, "scraping_start"),
            scrape("https://b.com", None),
            scrape("https://c.com", "scraping_start"),
        ]
        assert list(group_websites(steps)) == ["c.com"]

    def test_groups_by_hostname_in_first_seen_order(self):
        steps = [
            scrape("https://b.com/1", "scraping_start"),
            scrape("https://a.com/1", "scraping_start"),
            scrape("https://b.com/2", "scraping_success"),
        ]
        groups = group_websites(steps)
        assert list(groups) == ["b.com", "a.com"]
        assert len(groups["b.com"].steps) == 2
        assert groups["b.com"].url == "https://b.com/1"

    def test_title_from_metadata(self):
        groups = group_websites([scrape("https://a.com", "scraping_start", title="A Site")])
        assert groups["a.com"].title == "A Site"

    def test_title_defaults_to_hostname(self):
        groups = group_websites([scrape("https://a.com", "scraping_start")])
        assert groups["a.com"].title == "a.com"

    def test_bad_url_never_raises(self):
        groups = group_websites([scrape("http://[::1/oops", "scraping_start"), scrape("junk", "scraping_start")])
        assert "unknown" in groups

    def test_idempotent(self):
        steps = [
            scrape("https://a.com", "scraping_start"),
            scrape("https://a.com", "scraping_error"),
            scrape("https://b.com", "scraping_success", contentLength=5000),
        ]
        assert group_websites(steps) == group_websites(steps)


class TestStatus:
    def test_success_with_length(self):
        [group] = group_websites(
            [scrape("https://a.com", "scraping_success", contentLength=4200)]
        ).values()
        assert group.display_status == "success"
        assert group.status_label == "4.2k chars"

    def test_success_short_content(self):
        [group] = group_websites(
            [scrape("https://a.com", "scraping_success", contentLength=800)]
        ).values()
        assert group.status_label == "Content retrieved"

    def test_pending(self):
        [group] = group_websites([scrape("https://a.com", "scraping_start")]).values()
        assert group.true_status == "pending"
        assert group.display_status == "pending"
        assert group.status_label == "Extracting..."

    def test_latest_step_decides(self):
        [group] = group_websites(
            [
                scrape("https://a.com", "scraping_success", contentLength=5000),
                scrape("https://a.com", "scraping_error"),
            ]
        ).values()
        assert group.true_status == "error"

    def test_soft_failure_presentation(self):
        steps = [scrape("https://a.com", "scraping_start"), scrape("https://a.com", "scraping_fallback")]
        [group] = group_websites(steps).values()
        assert group.true_status == "fallback"
        assert group.display_status == "success"
        assert group.status_label == "Content retrieved"
        assert [s.phase for s in group.steps] == ["scraping_start", "scraping_fallback"]

    def test_without_soft_failure_presentation(self):
        steps = [scrape("https://a.com", "scraping_error")]
        [group] = group_websites(steps, soft_failure_presentation=False).values()
        assert group.display_status == "error"
        assert group.status_label == "Using snippet"
