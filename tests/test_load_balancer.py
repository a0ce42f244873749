"""
Unit tests for the pure greedy placement planner.
"""

from evalportal.services.load_balancer import Slot, WorkItem, pick_evaluator, plan_placements


class TestPickEvaluator:
    def test_picks_least_loaded_with_room(self):
        slots = [Slot(1, 2), Slot(2, 5)]
        assert pick_evaluator(slots, {1: 1, 2: 3}) == 1

    def test_skips_full_slots(self):
        slots = [Slot(1, 2), Slot(2, 2)]
        assert pick_evaluator(slots, {1: 0, 2: 2}) == 1
        assert pick_evaluator(slots, {1: 2, 2: 2}) is None

    def test_tie_goes_to_earlier_slot(self):
        slots = [Slot(7, 3), Slot(3, 3)]
        assert pick_evaluator(slots, {7: 1, 3: 1}) == 7

    def test_weight_must_fit(self):
        slots = [Slot(1, 3)]
        assert pick_evaluator(slots, {1: 2}, weight=1) == 1
        assert pick_evaluator(slots, {1: 2}, weight=2) is None


class TestPlanPlacements:
    def test_spreads_items_evenly(self):
        items = [WorkItem(k) for k in range(1, 5)]
        placements, loads = plan_placements(items, [Slot(1, 10), Slot(2, 10)], {1: 0, 2: 0})

        assert [fid for _, fid in placements] == [1, 2, 1, 2]
        assert loads == {1: 2, 2: 2}

    def test_input_loads_are_not_mutated(self):
        seed = {1: 0}
        _, loads = plan_placements([WorkItem(1)], [Slot(1, 1)], seed)
        assert seed == {1: 0}
        assert loads == {1: 1}

    def test_stops_at_first_unplaceable_item(self):
        items = [WorkItem(1), WorkItem(2), WorkItem(3)]
        placements, loads = plan_placements(items, [Slot(1, 2)], {1: 0})

        assert [item.key for item, _ in placements] == [1, 2]
        assert loads == {1: 2}

    def test_can_skip_unplaceable_items(self):
        items = [WorkItem(1, weight=3), WorkItem(2, weight=1)]
        placements, _ = plan_placements(items, [Slot(1, 2)], {1: 0}, stop_when_full=False)

        assert [item.key for item, _ in placements] == [2]

    def test_no_slots_places_nothing(self):
        placements, loads = plan_placements([WorkItem(1)], [], {})
        assert placements == []
        assert loads == {}
