from datetime import date
from decimal import Decimal

import pytest

from homebudget.categories import CategoryDirectory
from homebudget.categorization import CategorizationCascade, DefaultStage
from homebudget.categorize import categorize_batch, recategorize_all
from homebudget.errors import CompletionRateLimitError
from homebudget.models import CategorizationInput, CategorizationMethod
from homebudget.ratelimit import RateLimiter
from homebudget.settings import Settings
from tests.helpers.db import seed_category, seed_rule, seed_transaction
from tests.helpers.openai_stub import CompletionStub, FakeClock


def _items(n: int) -> list[CategorizationInput]:
    return [CategorizationInput(name=f"SHOP {i}", amount=Decimal("-1.00")) for i in range(n)]


def test_no_generative_calls_after_rate_limit_in_batch(store):
    seed_category(store, "Groceries")
    clock = FakeClock()
    limiter = RateLimiter(min_interval=2.0, cooldown=300.0, clock=clock, sleep=clock.sleep)
    stub = CompletionStub([CompletionRateLimitError("429 Too Many Requests"), "Groceries"])
    cascade = CategorizationCascade.build(
        store, Settings(openai_api_key="sk-test"), service=stub, limiter=limiter
    )
    delays: list[float] = []

    results = categorize_batch(cascade, _items(12), batch_size=5, delay=2.0, sleep=delays.append)

    assert len(results) == 12
    assert stub.count("complete") == 1
    assert {r.method for r in results} == {CategorizationMethod.DEFAULT}
    assert delays == [2.0, 2.0]
    # The latch ends with the batch; the cooldown window is still running.
    assert limiter.latched is False
    assert limiter.in_cooldown()
    clock.advance(301)
    assert limiter.available()


def test_batch_preserves_input_order(store):
    cats = {name: seed_category(store, name) for name in ("Alpha", "Beta", "Gamma")}
    for name, cid in cats.items():
        seed_rule(
            store, rule_type="keyword", conditions={"keywords": [name.lower()]}, category_id=cid
        )
    cascade = CategorizationCascade.build(store, Settings())
    names = ["gamma 1", "alpha 2", "beta 3", "alpha 4", "gamma 5", "beta 6", "alpha 7"]
    items = [CategorizationInput(name=n, amount=Decimal("-2.00")) for n in names]

    results = categorize_batch(cascade, items, batch_size=3, delay=0)

    expected = [cats[n.split()[0].title()] for n in names]
    assert [r.category_id for r in results] == expected


def test_failing_item_degrades_to_default(store):
    class _Boom:
        method = CategorizationMethod.RULE

        def attempt(self, tx):
            if tx.name == "BAD":
                raise RuntimeError("unexpected")
            return None

    cascade = CategorizationCascade([_Boom(), DefaultStage(CategoryDirectory(store))])
    items = [CategorizationInput(name=n, amount=Decimal("-1")) for n in ("OK", "BAD", "OK")]

    results = categorize_batch(cascade, items, batch_size=5, delay=0)

    assert [r.method for r in results] == [CategorizationMethod.DEFAULT] * 3
    [other] = store.select("hb_transaction_categories", {"name": "Other"})
    assert {r.category_id for r in results} == {other["id"]}


def test_batch_rejects_bad_size(store):
    with pytest.raises(ValueError):
        categorize_batch(CategorizationCascade.build(store, Settings()), _items(1), batch_size=0)
    assert categorize_batch(CategorizationCascade.build(store, Settings()), []) == []


def test_recategorize_only_uncategorized(store):
    coffee = seed_category(store, "Coffee Shops")
    misc = seed_category(store, "Misc")
    seed_rule(store, rule_type="keyword", conditions={"keywords": ["coffee"]}, category_id=coffee)
    todo = seed_transaction(store, "COFFEE BAR", "-3.50", date(2025, 9, 1))
    done = seed_transaction(store, "COFFEE CART", "-2.00", date(2025, 9, 2), category_id=misc)

    summary = recategorize_all(
        store, CategorizationCascade.build(store, Settings()), only_uncategorized=True, delay=0
    )

    assert (summary.processed, summary.updated, summary.errors) == (1, 1, 0)
    [row] = store.select("hb_transactions", {"id": todo})
    assert row["category_id"] == coffee
    assert row["category_method"] == "rule"
    assert row["category_confidence"] == pytest.approx(0.9)
    [untouched] = store.select("hb_transactions", {"id": done})
    assert untouched["category_id"] == misc
