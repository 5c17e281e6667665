"""
PCrawler

A polite, concurrent crawler that mines web pages for proxy servers and links.
"""

__version__ = "1.0.0"
__description__ = "A domain-aware web crawler that harvests proxy candidates and outbound links"
