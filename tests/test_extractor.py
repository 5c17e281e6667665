"""Unit tests for proxy and link extraction."""

from __future__ import annotations

from pcrawler.crawler.extractor import LINK_PATTERN, PROXY_PATTERN, ExtractionEngine
from pcrawler.crawler.state import CrawlState


class TestPatterns:
    """Tests for the raw regular expressions."""

    def test_proxy_pattern_matches_ip_and_port(self) -> None:
        body = "a 10.0.0.1:8080 b 192.168.100.200:3128 c"
        assert PROXY_PATTERN.findall(body) == ["10.0.0.1:8080", "192.168.100.200:3128"]

    def test_proxy_pattern_rejects_bad_ports(self) -> None:
        assert PROXY_PATTERN.findall("1.2.3.4:8") == []
        assert PROXY_PATTERN.findall("1.2.3.4:123456") == []

    def test_proxy_pattern_needs_four_octets(self) -> None:
        assert PROXY_PATTERN.findall("1.2.3:8080") == []

    def test_link_pattern_stops_at_quotes_and_brackets(self) -> None:
        body = '<a href="https://example.com/x?y=1">go</a> <http://other.org/p>'
        assert LINK_PATTERN.findall(body) == ["https://example.com/x?y=1", "http://other.org/p"]

    def test_link_pattern_scheme_is_case_insensitive(self) -> None:
        assert LINK_PATTERN.findall("see HTTPS://Example.com/X") == ["HTTPS://Example.com/X"]


class TestExtractionEngine:
    """Tests for ExtractionEngine.extract."""

    def test_duplicate_link_counted_once(self) -> None:
        state = CrawlState()
        engine = ExtractionEngine(state)

        result = engine.extract(
            "https://seed.test",
            "visit 10.0.0.1:8080 and http://example.org/a and http://example.org/a"
        )

        assert list(state.proxies) == ["10.0.0.1:8080"]
        assert state.counters.proxies_found == 1
        assert state.counters.links_found == 1
        assert result.new_links == ["http://example.org/a"]
        assert state.domains == {"example.org": 0}

    def test_proxies_deduplicated_across_pages(self) -> None:
        state = CrawlState()
        engine = ExtractionEngine(state)

        engine.extract("https://a.test", "1.1.1.1:80 2.2.2.2:8080")
        second = engine.extract("https://b.test", "2.2.2.2:8080 3.3.3.3:3128")

        assert sorted(state.proxies) == ["1.1.1.1:80", "2.2.2.2:8080", "3.3.3.3:3128"]
        assert state.counters.proxies_found == 3
        assert second.new_proxies == ["3.3.3.3:3128"]

    def test_existing_domain_count_preserved(self) -> None:
        state = CrawlState(domains={"example.org": 7})
        engine = ExtractionEngine(state)

        result = engine.extract("https://seed.test", "http://www.example.org/page")

        assert state.domains["example.org"] == 7
        assert result.new_domains == []
        assert state.counters.links_found == 1

    def test_subdomains_merge_into_one_record(self) -> None:
        state = CrawlState()
        engine = ExtractionEngine(state)

        result = engine.extract("https://seed.test", "http://www.x.com/a https://x.com/b http://blog.x.com")

        assert state.domains == {"x.com": 0}
        assert result.new_domains == ["x.com"]
        assert state.counters.links_found == 3

    def test_unparsable_link_counted_but_not_registered(self) -> None:
        state = CrawlState()
        engine = ExtractionEngine(state)

        result = engine.extract("https://seed.test", "broken http://[oops and http://ok.com")

        assert state.counters.links_found == 2
        assert result.new_links == ["http://[oops", "http://ok.com"]
        assert state.domains == {"ok.com": 0}

    def test_empty_body(self) -> None:
        state = CrawlState()
        result = ExtractionEngine(state).extract("https://seed.test", "")
        assert result.new_links == [] and result.new_proxies == []
        assert state.counters.links_found == 0
