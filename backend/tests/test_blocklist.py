import threading

import pytest

from localproxy.models import BlockRule


@pytest.mark.parametrize("pattern", ["example.com", "Tracker.IO", "localhost"])
def test_exact_rule_blocks_any_casing(store, pattern):
    assert store.add_rule(pattern, "exact")
    assert store.is_blocked(pattern)
    assert store.is_blocked(pattern.upper())
    assert store.is_blocked(f"  {pattern.lower()}  ")
    assert not store.is_blocked(pattern + "x")


def test_block_domain_defaults_to_exact(store):
    assert store.block_domain("Example.com")
    assert store.list_rules() == ["example.com"]
    assert store.list_rules_with_metadata()[0].dialect == "exact"


def test_glob_rule(store):
    assert store.add_rule("*.example.com", "glob")
    assert store.is_blocked("sub.example.com")
    assert store.is_blocked("api.example.com")
    assert not store.is_blocked("example.com")


def test_glob_pattern_is_lowercased(store):
    assert store.block_glob("*.ADS.Net")
    assert store.list_rules() == ["*.ads.net"]
    assert store.is_blocked("cdn.ads.net")


def test_regex_rule(store):
    assert store.add_rule(r".*\.example\.com$", "regex")
    assert store.is_blocked("sub.example.com")
    assert not store.is_blocked("example.com")


def test_invalid_regex_is_rejected(store):
    assert not store.add_rule("invalid-regex[", "regex")
    assert store.list_rules() == []


def test_regex_is_stored_verbatim_and_removable(store):
    assert store.block_regex(r"Ads\d+")
    assert store.list_rules() == [r"Ads\d+"]
    assert store.remove_rule(r"Ads\d+")
    assert store.list_rules() == []


def test_unknown_dialect_is_exact(store):
    assert store.add_rule("*.example.com", "wildcard")
    assert store.list_rules_with_metadata()[0].dialect == "exact"
    assert not store.is_blocked("sub.example.com")
    assert store.is_blocked("*.example.com")


def test_add_is_idempotent_and_keeps_first_dialect(store):
    assert store.add_rule("ads.net", "exact")
    assert store.add_rule("ADS.net", "glob")
    rules = store.list_rules_with_metadata()
    assert len(rules) == 1
    assert rules[0].dialect == "exact"


def test_remove_is_idempotent(store):
    store.add_rule("example.com", "exact")
    assert store.remove_rule("Example.com ")
    assert not store.is_blocked("example.com")
    assert store.remove_rule("example.com")
    assert store.list_rules() == []


@pytest.mark.parametrize("value", ["", "   ", "\t\n", None])
def test_empty_input_is_a_no_op(store, value):
    assert not store.add_rule(value, "exact")
    assert not store.add_rule(value, "regex")
    assert not store.remove_rule(value)
    assert not store.is_blocked(value)
    assert store.list_rules() == []


def test_listing_is_newest_first(store):
    for p in ["first.com", "second.com", "third.com"]:
        assert store.add_rule(p, "exact")
    assert store.list_rules() == ["third.com", "second.com", "first.com"]
    meta = store.list_rules_with_metadata()
    assert [r.pattern for r in meta] == ["third.com", "second.com", "first.com"]
    assert all(r.created_at is not None for r in meta)


def test_empty_store_lists_nothing(store):
    assert store.list_rules() == []
    assert store.list_rules_with_metadata() == []


def test_matching_rule(store):
    store.add_rule("*.tracker.io", "glob")
    store.add_rule("doubleclick", "regex")
    hit = store.matching_rule("pixel.tracker.io")
    assert hit.pattern == "*.tracker.io"
    assert hit.dialect == "glob"
    assert store.matching_rule("example.org") is None


def test_metadata_serializes_camel_case(store):
    store.add_rule("example.com", "exact")
    dumped = store.list_rules_with_metadata()[0].model_dump(by_alias=True)
    assert set(dumped) == {"pattern", "dialect", "createdAt"}


def test_concurrent_adds_keep_every_pattern(store):
    patterns = [f"host{i}.example.com" for i in range(25)]

    def add(p):
        for _ in range(10):
            if store.add_rule(p, "exact"):
                return

    threads = [threading.Thread(target=add, args=(p,)) for p in patterns]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    stored = store.list_rules()
    assert sorted(stored) == sorted(patterns)
    assert len(stored) == len(set(stored))


def test_storage_failure_reads_as_not_blocked(store, engine):
    store.add_rule("example.com", "exact")
    BlockRule.__table__.drop(engine)
    assert not store.is_blocked("example.com")
    assert not store.add_rule("other.com", "exact")
    assert not store.remove_rule("example.com")
    assert store.list_rules() == []
    assert store.list_rules_with_metadata() == []
    assert store.matching_rule("example.com") is None
