"""Unit tests for the curation engine."""

import datetime
import unittest

from src.curation import CurationEngine, live_collection, rank_candidates
from src.errors import AllProvidersExhausted, DegradedContentForbidden
from src.models import Candidate, ContentKind, Environment
from src.providers.base import ProviderChain
from src.providers.parsing import PLACEHOLDER_PREFIX
from src.tenants import TenantRegistry
from tests.fakes import (
    FakeProvider,
    InMemoryStore,
    failing_provider,
    make_candidates,
    no_sleep_retry,
)

NOW = datetime.datetime(2026, 10, 19, 6, 0, tzinfo=datetime.timezone.utc)

COOKING = {
    "key": "cooking",
    "displayName": "Cooking",
    "category": "culinary",
    "keywords": ["knife-skills", "baking", "pastry", "italian", "grilling"],
}
FITNESS = {
    "key": "fitness",
    "category": "fitness",
    "keywords": ["strength", "cardio"],
}


class CategoryProvider:
    """Fails for some categories, succeeds for the rest."""

    name = "by-category"

    def __init__(self, failing, candidates):
        self.failing = set(failing)
        self.candidates = candidates

    def generate(self, category, keywords, item_count):
        if category in self.failing:
            raise RuntimeError(f"upstream error for {category}")
        return list(self.candidates)


class TestCurationEngine(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryStore()
        self.registry = TenantRegistry.from_dicts([COOKING])
        self.tenant = self.registry.get("cooking")
        self.fresh = NOW - datetime.timedelta(hours=1)

    def _engine(self, providers, environment=Environment.PRODUCTION, article_providers=None):
        return CurationEngine(
            store=self.store,
            registry=self.registry,
            chains={
                ContentKind.NEWS: ProviderChain(providers),
                ContentKind.ARTICLE: ProviderChain(article_providers or providers),
            },
            environment=environment,
            retry=no_sleep_retry,
            clock=lambda: NOW,
        )

    def _news(self, tenant_key="cooking"):
        return self.store.docs(live_collection(tenant_key, ContentKind.NEWS))

    def test_falls_back_to_second_provider_and_keeps_top_three(self):
        first = failing_provider("provider-1")
        second = FakeProvider("provider-2", make_candidates([0.9, 0.7, 0.95, 0.6], self.fresh))
        engine = self._engine([first, second])

        result = engine.curate_tenant(self.tenant, ContentKind.NEWS)

        self.assertEqual(result.provider, "provider-2")
        self.assertEqual(result.written, 3)
        self.assertEqual(len(first.calls), 1)
        self.assertEqual(first.calls[0], ("culinary", ["knife-skills", "baking", "pastry"], 3))

        docs = list(self._news().values())
        self.assertEqual(len(docs), 3)
        scores = sorted((d["relevanceScore"] for d in docs), reverse=True)
        self.assertEqual(scores, [0.95, 0.9, 0.7])
        for doc in docs:
            self.assertTrue(doc["generated"])
            self.assertFalse(doc["degraded"])
            self.assertEqual(doc["provider"], "provider-2")
            self.assertEqual(doc["tenantKey"], "cooking")
            self.assertGreaterEqual(doc["curatedAt"], NOW)

    def test_replaces_previous_set(self):
        self.store.put(live_collection("cooking", ContentKind.NEWS), "stale", {"title": "Old"})
        provider = FakeProvider("p", make_candidates([0.8, 0.6], self.fresh))
        engine = self._engine([provider])

        result = engine.curate_tenant(self.tenant, ContentKind.NEWS)
        self.assertEqual(result.deleted, 1)
        self.assertNotIn("stale", self._news())
        first_ids = set(self._news())

        provider.candidates = make_candidates([0.7], self.fresh, prefix="Fresh")
        engine.curate_tenant(
            self.tenant, ContentKind.NEWS, cycle_at=NOW + datetime.timedelta(minutes=5)
        )
        docs = self._news()
        self.assertEqual(len(docs), 1)
        self.assertFalse(first_ids & set(docs))
        self.assertEqual(next(iter(docs.values()))["title"], "Fresh 0")

    def test_never_writes_more_than_three(self):
        provider = FakeProvider("p", make_candidates([0.1 * i for i in range(8)], self.fresh))
        self._engine([provider]).curate_tenant(self.tenant, ContentKind.NEWS)
        self.assertEqual(len(self._news()), 3)

    def test_large_replacement_is_committed_in_chunks(self):
        self.store = InMemoryStore(max_batch_size=2)
        collection = live_collection("cooking", ContentKind.NEWS)
        for i in range(5):
            self.store.put(collection, f"old-{i}", {"title": f"Old {i}"})
        provider = FakeProvider("p", make_candidates([0.9, 0.8, 0.7], self.fresh))

        self._engine([provider]).curate_tenant(self.tenant, ContentKind.NEWS)

        self.assertEqual(self.store.commits, [2, 2, 2, 2])
        self.assertEqual(len(self._news()), 3)

    def test_production_writes_nothing_when_all_providers_fail(self):
        collection = live_collection("cooking", ContentKind.NEWS)
        self.store.put(collection, "existing", {"title": "Yesterday"})
        engine = self._engine([failing_provider("a"), failing_provider("b")])

        with self.assertRaises(AllProvidersExhausted) as ctx:
            engine.curate_tenant(self.tenant, ContentKind.NEWS)

        self.assertEqual(set(ctx.exception.failures), {"a", "b"})
        self.assertEqual(self.store.commits, [])
        self.assertEqual(self._news(), {"existing": {"title": "Yesterday"}})

    def test_production_refuses_placeholders(self):
        engine = self._engine([])
        with self.assertRaises(DegradedContentForbidden):
            engine.placeholder_candidates(self.tenant, ContentKind.NEWS)

    def test_production_blocks_degraded_provider_output(self):
        padded = make_candidates([0.9], self.fresh)
        padded[0].degraded = True
        engine = self._engine([FakeProvider("p", padded)])

        with self.assertRaises(DegradedContentForbidden):
            engine.curate_tenant(self.tenant, ContentKind.NEWS)
        self.assertEqual(self.store.commits, [])

    def test_development_uses_labeled_placeholders(self):
        engine = self._engine([failing_provider("a")], environment=Environment.DEVELOPMENT)

        result = engine.curate_tenant(self.tenant, ContentKind.NEWS)

        self.assertEqual(result.provider, "placeholder")
        self.assertTrue(result.degraded)
        docs = list(self._news().values())
        self.assertEqual(len(docs), 3)
        for doc in docs:
            self.assertTrue(doc["title"].startswith(PLACEHOLDER_PREFIX))
            self.assertTrue(doc["degraded"])
            self.assertFalse(doc["generated"])

    def test_keeps_current_items_when_nothing_is_fresh(self):
        collection = live_collection("cooking", ContentKind.NEWS)
        self.store.put(collection, "existing", {"title": "Yesterday"})
        stale = make_candidates([0.9, 0.8], NOW - datetime.timedelta(hours=48))

        result = self._engine([FakeProvider("p", stale)]).curate_tenant(
            self.tenant, ContentKind.NEWS
        )

        self.assertEqual(result.written, 0)
        self.assertIn("existing", self._news())

    def test_articles_request_per_keyword_and_ignore_age(self):
        old = make_candidates([0.6, 0.9], NOW - datetime.timedelta(days=90), prefix="Guide")
        for candidate in old:
            candidate.body = "word " * 450
        provider = FakeProvider("writer", old)

        result = self._engine([provider]).curate_tenant(self.tenant, ContentKind.ARTICLE)

        self.assertEqual(result.written, 2)
        self.assertEqual(provider.calls[0][2], 9)
        docs = self.store.docs(live_collection("cooking", ContentKind.ARTICLE))
        for doc in docs.values():
            self.assertEqual(doc["kind"], "article")
            self.assertEqual(doc["status"], "published")
            self.assertTrue(doc["slug"].startswith("guide-"))
            self.assertEqual(doc["readTimeMinutes"], 3)


class TestRunCycle(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryStore()
        self.registry = TenantRegistry.from_dicts([COOKING, FITNESS])
        fresh = NOW - datetime.timedelta(hours=2)
        provider = CategoryProvider(["culinary"], make_candidates([0.8, 0.7], fresh))
        self.engine = CurationEngine(
            store=self.store,
            registry=self.registry,
            chains={kind: ProviderChain([provider]) for kind in ContentKind},
            environment=Environment.PRODUCTION,
            retry=no_sleep_retry,
            clock=lambda: NOW,
        )

    def test_one_failing_tenant_does_not_stop_the_others(self):
        report = self.engine.run_cycle(ContentKind.NEWS)

        self.assertEqual(report.succeeded, ["fitness"])
        self.assertIn("cooking", report.failed)
        self.assertEqual(report.started_at, NOW)
        self.assertEqual(len(self.store.docs("gurus/fitness/news")), 2)
        self.assertEqual(self.store.docs("gurus/cooking/news"), {})

    def test_overlapping_cycle_of_same_kind_is_skipped(self):
        lock = self.engine._cycle_locks[ContentKind.NEWS]
        lock.acquire()
        try:
            self.assertIsNone(self.engine.run_cycle(ContentKind.NEWS))
            # A different kind is not blocked
            self.assertIsNotNone(self.engine.run_cycle(ContentKind.ARTICLE))
        finally:
            lock.release()
        self.assertEqual(self.store.docs("gurus/fitness/news"), {})


class TestRanking(unittest.TestCase):
    def test_orders_by_relevance(self):
        fresh = NOW - datetime.timedelta(hours=1)
        ranked = rank_candidates(make_candidates([0.9, 0.7, 0.95, 0.6], fresh), ContentKind.NEWS, NOW)
        self.assertEqual([c.relevance_score for c in ranked], [0.95, 0.9, 0.7])

    def test_more_recent_wins_on_equal_relevance(self):
        older = Candidate("Older", "s", published_at=NOW - datetime.timedelta(hours=10), relevance_score=0.8)
        newer = Candidate("Newer", "s", published_at=NOW - datetime.timedelta(hours=1), relevance_score=0.8)
        ranked = rank_candidates([older, newer], ContentKind.NEWS, NOW)
        self.assertEqual([c.title for c in ranked], ["Newer", "Older"])

    def test_recency_does_not_outrank_relevance(self):
        hours_ago = [1, 2, 23, 3]
        candidates = [
            Candidate(f"Story {i}", "s", published_at=NOW - datetime.timedelta(hours=h), relevance_score=score)
            for i, (score, h) in enumerate(zip([0.9, 0.7, 0.95, 0.6], hours_ago))
        ]
        ranked = rank_candidates(candidates, ContentKind.NEWS, NOW)
        self.assertEqual([c.relevance_score for c in ranked], [0.95, 0.9, 0.7])

    def test_older_but_more_relevant_item_is_selected(self):
        candidates = [
            Candidate("Fresh A", "s", published_at=NOW, relevance_score=0.75),
            Candidate("Fresh B", "s", published_at=NOW, relevance_score=0.78),
            Candidate("Fresh C", "s", published_at=NOW, relevance_score=0.79),
            Candidate("Older", "s", published_at=NOW - datetime.timedelta(hours=20), relevance_score=0.8),
        ]
        ranked = rank_candidates(candidates, ContentKind.NEWS, NOW)
        self.assertEqual([c.title for c in ranked], ["Older", "Fresh C", "Fresh B"])

    def test_recency_weight_is_tunable(self):
        older = Candidate("Older", "s", published_at=NOW - datetime.timedelta(hours=20), relevance_score=0.8)
        fresh = Candidate("Fresh", "s", published_at=NOW, relevance_score=0.75)
        ranked = rank_candidates([older, fresh], ContentKind.NEWS, NOW, recency_weight=0.5)
        self.assertEqual([c.title for c in ranked], ["Fresh", "Older"])

    def test_engine_ranks_staggered_cooking_news_by_relevance(self):
        store = InMemoryStore()
        registry = TenantRegistry.from_dicts([COOKING])
        candidates = [
            Candidate(f"Story {i}", "s", published_at=NOW - datetime.timedelta(hours=h), relevance_score=score)
            for i, (score, h) in enumerate(zip([0.9, 0.7, 0.95, 0.6], [1, 2, 23, 3]))
        ]
        chain = ProviderChain([failing_provider("p1"), FakeProvider("p2", candidates)])
        engine = CurationEngine(
            store=store,
            registry=registry,
            chains={kind: chain for kind in ContentKind},
            environment=Environment.PRODUCTION,
            retry=no_sleep_retry,
            clock=lambda: NOW,
        )

        engine.curate_tenant(registry.get("cooking"), ContentKind.NEWS)

        docs = store.query("gurus/cooking/news", order_by="relevanceScore", descending=True)
        self.assertEqual([d.data["title"] for d in docs], ["Story 2", "Story 0", "Story 1"])

    def test_drops_stale_news_but_not_articles(self):
        stale = Candidate("Stale", "s", published_at=NOW - datetime.timedelta(hours=25), relevance_score=1.0)
        undated = Candidate("Undated", "s")
        self.assertEqual(
            [c.title for c in rank_candidates([stale, undated], ContentKind.NEWS, NOW)],
            ["Undated"],
        )
        self.assertEqual(len(rank_candidates([stale, undated], ContentKind.ARTICLE, NOW)), 2)


if __name__ == "__main__":
    unittest.main()
