from __future__ import annotations

import random
import unittest

from fakes import make_document, make_panel

from health_context.catalog import ItemCatalog
from health_context.categories import Category, DocumentCategory
from health_context.config import EngineConfig
from health_context.context_budget import (
    CostEstimator,
    collect_cost_inputs,
    estimate_tokens,
    fingerprint,
    format_token_count,
    size_level,
)
from health_context.models import SizeLevel
from health_context.selection import SelectionStore


class CostEstimatorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = SelectionStore()
        self.estimator = CostEstimator()

    def test_lab_panel_and_personal_info(self) -> None:
        catalog = ItemCatalog(panels=[make_panel("panel-1", 3)])
        self.store.set_category_enabled(Category.lab_panel, True)
        self.store.set_item_selected("panel-1", True)

        self.assertEqual(self.estimator.estimate(self.store.freeze(), catalog), 200)

        self.store.set_category_enabled(Category.personal_info, True)
        self.assertEqual(self.estimator.estimate(self.store.freeze(), catalog), 400)

    def test_documents_with_and_without_text(self) -> None:
        catalog = ItemCatalog(
            documents=[
                make_document("img-1", text="x" * 400),
                make_document("img-2", text=None),
            ]
        )
        self.store.set_category_enabled(Category.imaging_report, True)
        self.store.set_item_selected("img-1", True)
        self.store.set_item_selected("img-2", True)

        self.assertEqual(self.estimator.estimate(self.store.freeze(), catalog), 100 + 500)

    def test_empty_text_uses_default(self) -> None:
        catalog = ItemCatalog(documents=[make_document("img-1", text="")])
        self.store.replace({Category.imaging_report}, {"img-1"})
        self.assertEqual(self.estimator.estimate(self.store.freeze(), catalog), 500)

    def test_disabled_category_items_cost_nothing(self) -> None:
        catalog = ItemCatalog(documents=[make_document("img-1", text="x" * 800)])
        self.store.set_item_selected("img-1", True)
        self.assertEqual(self.estimator.estimate(self.store.freeze(), catalog), 0)

    def test_unknown_ids_cost_nothing(self) -> None:
        self.store.replace({Category.imaging_report}, {"ghost"})
        self.assertEqual(self.estimator.estimate(self.store.freeze(), ItemCatalog()), 0)

    def test_cached_value_is_reused_until_inputs_change(self) -> None:
        catalog = ItemCatalog(documents=[make_document("img-1", text="x" * 40)])
        self.store.replace({Category.imaging_report}, {"img-1"})

        first = self.estimator.snapshot(self.store.freeze(), catalog)
        second = self.estimator.snapshot(self.store.freeze(), catalog)
        self.assertIs(first, second)
        self.assertEqual(self.estimator.recomputations, 1)
        self.assertEqual(self.estimator.cache_hits, 1)

        self.store.set_item_selected("img-1", False)
        third = self.estimator.snapshot(self.store.freeze(), catalog)
        self.assertNotEqual(third.fingerprint, first.fingerprint)
        self.assertEqual(third.tokens, 0)
        self.assertEqual(self.estimator.recomputations, 2)

    def test_invalidate_drops_cached_snapshot(self) -> None:
        catalog = ItemCatalog(panels=[make_panel("panel-1", 2)])
        self.store.replace({Category.lab_panel}, {"panel-1"})
        self.assertIsNone(self.estimator.cached)

        snapshot = self.estimator.snapshot(self.store.freeze(), catalog)
        self.assertIs(self.estimator.cached, snapshot)

        self.estimator.invalidate()
        self.assertIsNone(self.estimator.cached)
        self.assertEqual(self.estimator.estimate(self.store.freeze(), catalog), 150)
        self.assertEqual(self.estimator.recomputations, 2)

    def test_text_length_change_invalidates_cache(self) -> None:
        short = ItemCatalog(documents=[make_document("img-1", text="x" * 40)])
        long = ItemCatalog(documents=[make_document("img-1", text="x" * 4000)])
        self.store.replace({Category.imaging_report}, {"img-1"})

        self.assertEqual(self.estimator.estimate(self.store.freeze(), short), 10)
        self.assertEqual(self.estimator.estimate(self.store.freeze(), long), 1000)

    def test_result_count_change_invalidates_cache(self) -> None:
        self.store.replace({Category.lab_panel}, {"panel-1"})
        one_result = ItemCatalog(panels=[make_panel("panel-1", 1)])
        four_results = ItemCatalog(panels=[make_panel("panel-1", 4)])

        self.assertEqual(self.estimator.estimate(self.store.freeze(), one_result), 100)
        self.assertEqual(self.estimator.estimate(self.store.freeze(), four_results), 250)

    def test_fingerprint_ignores_text_content_of_same_length(self) -> None:
        self.store.replace({Category.imaging_report}, {"img-1"})
        first = collect_cost_inputs(self.store.freeze(), ItemCatalog(documents=[make_document("img-1", text="abcd")]))
        second = collect_cost_inputs(self.store.freeze(), ItemCatalog(documents=[make_document("img-1", text="wxyz")]))
        self.assertEqual(fingerprint(first), fingerprint(second))

    def test_cached_estimate_matches_full_recomputation(self) -> None:
        rng = random.Random(7)
        catalog = ItemCatalog(
            documents=[
                make_document("img-1", text="x" * 120),
                make_document("img-2"),
                make_document("visit-1", DocumentCategory.consultation, text="y" * 999),
                make_document("lab-doc", DocumentCategory.lab_report, text="z" * 64),
            ],
            panels=[make_panel("panel-1", 2), make_panel("panel-2", 7)],
        )
        ids = ["img-1", "img-2", "visit-1", "lab-doc", "panel-1", "panel-2", "ghost"]
        for _ in range(200):
            if rng.random() < 0.3:
                self.store.set_category_enabled(rng.choice(list(Category)), rng.random() < 0.5)
            else:
                self.store.set_item_selected(rng.choice(ids), rng.random() < 0.5)
            state = self.store.freeze()
            self.assertEqual(self.estimator.estimate(state, catalog), estimate_tokens(state, catalog))

    def test_breakdown_sums_to_total(self) -> None:
        catalog = ItemCatalog(
            documents=[make_document("img-1", text="x" * 400)],
            panels=[make_panel("panel-1", 3)],
        )
        self.store.replace(set(Category), {"img-1", "panel-1"})
        snapshot = self.estimator.snapshot(self.store.freeze(), catalog)

        self.assertEqual(snapshot.breakdown.tokens_for(Category.personal_info), 200)
        self.assertEqual(snapshot.breakdown.tokens_for(Category.lab_panel), 200)
        self.assertEqual(snapshot.breakdown.tokens_for(Category.imaging_report), 100)
        self.assertEqual(snapshot.breakdown.total, snapshot.tokens)

    def test_custom_config(self) -> None:
        estimator = CostEstimator(EngineConfig(chars_per_token=2, default_item_tokens=10))
        catalog = ItemCatalog(documents=[make_document("img-1", text="x" * 40), make_document("img-2")])
        self.store.replace({Category.imaging_report}, {"img-1", "img-2"})
        self.assertEqual(estimator.estimate(self.store.freeze(), catalog), 30)


class FormattingTests(unittest.TestCase):
    def test_format_token_count(self) -> None:
        self.assertEqual(format_token_count(0), "0")
        self.assertEqual(format_token_count(850), "850")
        self.assertEqual(format_token_count(999), "999")
        self.assertEqual(format_token_count(1000), "1.0K")
        self.assertEqual(format_token_count(4200), "4.2K")
        self.assertEqual(format_token_count(15_000), "15K")
        self.assertEqual(format_token_count(10_000), "10K")

    def test_size_level_thresholds(self) -> None:
        self.assertIs(size_level(3999), SizeLevel.small)
        self.assertIs(size_level(4000), SizeLevel.medium)
        self.assertIs(size_level(7999), SizeLevel.medium)
        self.assertIs(size_level(8000), SizeLevel.large)


if __name__ == "__main__":
    unittest.main()
