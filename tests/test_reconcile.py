from __future__ import annotations

import asyncio
import unittest

from fakes import FakeCategoryFlagStore, FakeDocumentStore, FakeLabPanelStore, make_document, make_panel

from health_context.catalog import ItemCatalog
from health_context.categories import Category
from health_context.config import EngineConfig
from health_context.errors import PersistenceFailure
from health_context.reconcile import CATEGORY_FLAGS_KEY, PersistenceAdapter, plan_writes
from health_context.selection import SelectionState


def state(selected: set[str], enabled: set[Category] | None = None) -> SelectionState:
    return SelectionState(enabled_categories=frozenset(enabled or set()), selected_item_ids=frozenset(selected))


class PlanWritesTests(unittest.TestCase):
    def setUp(self) -> None:
        self.catalog = ItemCatalog(
            documents=[make_document("doc-a", included=True), make_document("doc-b")],
            panels=[make_panel("panel-a", 2, included=True), make_panel("panel-b", 1)],
        )

    def test_unchanged_selection_plans_nothing(self) -> None:
        self.assertEqual(plan_writes(state({"doc-a", "panel-a"}), self.catalog), [])

    def test_writes_exactly_the_changed_items(self) -> None:
        plan = plan_writes(state({"doc-b", "panel-a"}), self.catalog)

        self.assertEqual([(write.item_id, write.include) for write in plan], [("doc-a", False), ("doc-b", True)])
        self.assertTrue(all(write.item.include_in_ai_context == write.include for write in plan))

    def test_ghost_ids_are_not_written(self) -> None:
        plan = plan_writes(state({"doc-a", "panel-a", "ghost"}), self.catalog)
        self.assertEqual(plan, [])

    def test_plan_does_not_mutate_catalog(self) -> None:
        plan_writes(state(set()), self.catalog)
        self.assertEqual(self.catalog.included_ids(), {"doc-a", "panel-a"})


class PersistenceAdapterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.documents = FakeDocumentStore([make_document("doc-a", included=True), make_document("doc-b")])
        self.panels = FakeLabPanelStore([make_panel("panel-a", 2)])
        self.flags = FakeCategoryFlagStore()
        self.catalog = ItemCatalog(
            documents=list(self.documents.documents.values()),
            panels=list(self.panels.panels.values()),
        )
        self.adapter = PersistenceAdapter(self.documents, self.panels, self.flags)

    def test_routes_writes_to_owning_store(self) -> None:
        plan = plan_writes(state({"doc-b", "panel-a"}), self.catalog)
        report = asyncio.run(self.adapter.apply(plan, {Category.imaging_report}))

        self.assertEqual(report.written, ["doc-a", "doc-b", "panel-a"])
        self.assertTrue(report.category_flags_persisted)
        self.assertEqual(sorted(doc.id for doc in self.documents.updates), ["doc-a", "doc-b"])
        self.assertEqual([panel.id for panel in self.panels.updates], ["panel-a"])
        self.assertEqual(self.flags.persisted, [{Category.imaging_report}])

    def test_empty_plan_still_persists_category_flags(self) -> None:
        report = asyncio.run(self.adapter.apply([], {Category.personal_info}))
        self.assertEqual(report.write_count, 0)
        self.assertEqual(self.flags.persisted, [{Category.personal_info}])

    def test_failure_waits_for_every_write_and_reports_first(self) -> None:
        self.documents.fail_ids = {"doc-a"}
        plan = plan_writes(state({"doc-b", "panel-a"}), self.catalog)

        with self.assertRaises(PersistenceFailure) as caught:
            asyncio.run(self.adapter.apply(plan, {Category.imaging_report}))

        failure = caught.exception
        self.assertIn("doc-a", str(failure.first_error))
        self.assertEqual(set(failure.failures), {"doc-a"})
        self.assertEqual(failure.succeeded, ["doc-b", "panel-a"])
        self.assertTrue(failure.category_flags_persisted)
        self.assertEqual(len(self.documents.updates) + len(self.panels.updates), 3)
        self.assertTrue(self.documents.documents["doc-b"].include_in_ai_context)

    def test_category_flag_failure_does_not_stop_item_writes(self) -> None:
        self.flags.fail = True
        plan = plan_writes(state({"doc-a", "doc-b"}), self.catalog)

        with self.assertRaises(PersistenceFailure) as caught:
            asyncio.run(self.adapter.apply(plan, set()))

        self.assertFalse(caught.exception.category_flags_persisted)
        self.assertEqual(set(caught.exception.failures), {CATEGORY_FLAGS_KEY})
        self.assertEqual(caught.exception.succeeded, ["doc-b"])

    def test_writes_run_concurrently_up_to_limit(self) -> None:
        in_flight = 0
        peak = 0

        class SlowDocumentStore(FakeDocumentStore):
            async def update(self, document) -> None:
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                await asyncio.sleep(0.01)
                in_flight -= 1
                await super().update(document)

        documents = SlowDocumentStore([make_document(f"doc-{index}") for index in range(6)])
        catalog = ItemCatalog(documents=list(documents.documents.values()))
        adapter = PersistenceAdapter(documents, self.panels, self.flags, config=EngineConfig(max_write_concurrency=3))
        plan = plan_writes(state({f"doc-{index}" for index in range(6)}), catalog)

        report = asyncio.run(adapter.apply(plan, set()))

        self.assertEqual(report.write_count, 6)
        self.assertEqual(peak, 3)


if __name__ == "__main__":
    unittest.main()
