"""Property-based tests for the response parsing cascade."""

import json

from hypothesis import given, strategies as st

from parley.parsing import MIN_OPTIONS, ParseFailureReason, parse_response

option_text = st.text(
    alphabet=st.characters(blacklist_categories=("Cs", "Cc")), min_size=1, max_size=40
).filter(lambda s: s.strip())


@given(st.text())
def test_parse_response_never_raises(raw):
    """Strategies report failure as data for any input."""
    parse_response(raw)


@given(st.text())
def test_success_always_has_minimum_trimmed_options(raw):
    """A success never carries fewer than three non-empty, trimmed options."""
    outcome = parse_response(raw)
    if outcome.ok:
        assert len(outcome.options) >= MIN_OPTIONS
        for option in outcome.options:
            assert option
            assert option == option.strip()
    else:
        assert outcome.reason in (
            ParseFailureReason.UNPARSEABLE,
            ParseFailureReason.INSUFFICIENT_OPTIONS,
        )


@given(st.text())
def test_parse_response_is_idempotent(raw):
    """Parsing the same text twice gives the same outcome."""
    assert parse_response(raw) == parse_response(raw)


@given(st.lists(option_text, min_size=MIN_OPTIONS, max_size=6))
def test_options_document_round_trips(options):
    """A well-formed options document yields exactly its trimmed items."""
    raw = json.dumps({"options": options})
    outcome = parse_response(raw)
    assert outcome.ok
    assert list(outcome.options) == [o.strip() for o in options]
