"""Tests for the Gmail search query."""

from gmail_subscription_scanner.query import build_query


def test_default_query():
    assert build_query() == (
        "in:anywhere (subject:(subscription OR payment OR receipt OR invoice OR billing "
        "OR netflix OR spotify OR amazon OR hbo OR disney) "
        "OR from:(netflix.com OR spotify.com OR amazon.com OR hbo.com OR youtube.com OR disneyplus.com))"
    )


def test_custom_tables():
    query = build_query(keywords=["invoice"], providers=["figma"], domains=["figma.com"])
    assert query == "in:anywhere (subject:(invoice OR figma) OR from:(figma.com))"


def test_no_domains():
    assert build_query(keywords=["receipt"], providers=[], domains=[]) == "in:anywhere (subject:(receipt))"
