"""
Product affinity (market basket) tests.

Covers:
  - confidence / lift on small hand-checked order sets
  - canonical pair direction and id ordering
  - min co-occurrence and min confidence filters
  - lift-descending sort and max_pairs truncation
  - partitioned counting matching the serial count
"""
import pytest

from aov_insights.ml.entities import AffinityConfig, AffinityPair, LineItem, Order
from aov_insights.ml.errors import ComputationError, InputError
from aov_insights.ml.product_affinity import (
    build_baskets,
    canonical_direction,
    check_affinity_invariants,
    compute_affinity,
    count_co_occurrences,
    count_partition,
    product_sort_key,
)


def _basket_orders(make_order, baskets):
    return [make_order(5000 + i, 50.0, products) for i, products in enumerate(baskets)]


# ────────────────────────────────────────────
# HAND-CHECKED SCENARIOS
# ────────────────────────────────────────────


class TestAffinityScenarios:

    def test_independent_pair_has_lift_one(self, make_order):
        """6 of 10 orders hold A and B, the rest hold A alone"""
        orders = _basket_orders(make_order, [["101", "202"]] * 6 + [["101"]] * 4)
        pairs = compute_affinity(orders)

        assert len(pairs) == 1
        pair = pairs[0]
        assert pair.product_a_id == "101"
        assert pair.product_b_id == "202"
        assert pair.co_occurrence_count == 6
        assert pair.confidence == 0.6
        assert pair.lift == 1.0

    def test_always_together_gives_full_confidence(self, make_order):
        """A and B each in 5 of 10 orders, always together"""
        orders = _basket_orders(make_order, [["1", "2"]] * 5 + [["3"]] * 5)
        pairs = compute_affinity(orders)

        assert len(pairs) == 1
        assert pairs[0].product_a_id == "1"
        assert pairs[0].confidence == 1.0
        assert pairs[0].lift == 2.0

    def test_titles_come_from_line_items(self, make_order):
        orders = _basket_orders(make_order, [["1", "2"]] * 3)
        pair = compute_affinity(orders)[0]
        assert pair.product_a_title == "Product 1"
        assert pair.product_b_title == "Product 2"

    def test_repeated_product_counts_once_per_order(self):
        items = (
            LineItem("1", "Tee", 2, 15.0),
            LineItem("1", "Tee", 1, 15.0),
            LineItem("2", "Cap", 1, 10.0),
        )
        orders = [Order(id=str(i), total_price=55.0, line_items=items) for i in range(3)]
        pair = compute_affinity(orders)[0]
        assert pair.co_occurrence_count == 3
        assert pair.confidence == 1.0

    def test_no_multi_item_orders(self, make_order):
        orders = _basket_orders(make_order, [["1"], ["2"], ["3"]])
        assert compute_affinity(orders) == []

    def test_empty_orders(self):
        assert compute_affinity([]) == []


# ────────────────────────────────────────────
# DIRECTION AND ORDERING
# ────────────────────────────────────────────


class TestPairDirection:

    def test_more_frequent_product_first(self):
        assert canonical_direction("1", "2", {"1": 3, "2": 8}) == ("2", "1")

    def test_tie_goes_to_lower_id(self):
        assert canonical_direction("b", "a", {"a": 4, "b": 4}) == ("a", "b")

    def test_numeric_ids_compare_numerically(self):
        assert canonical_direction("10", "9", {"10": 3, "9": 3}) == ("9", "10")
        assert sorted(["10", "9", "abc"], key=product_sort_key) == ["9", "10", "abc"]

    def test_baskets_are_sorted_and_distinct(self, make_order):
        baskets = build_baskets([make_order(1, 10, ["30", "4", "30"])])
        assert baskets == [("4", "30")]


# ────────────────────────────────────────────
# FILTERS, SORTING, TRUNCATION
# ────────────────────────────────────────────


class TestAffinityFilters:

    @staticmethod
    def _two_pair_orders(make_order):
        # (1,2): co=3, conf=1.0, lift=10/3; (3,4): co=3, conf=0.5, lift=10/6
        return _basket_orders(
            make_order,
            [["1", "2"]] * 3 + [["3", "4"]] * 3 + [["3"]] * 3 + [["5"]],
        )

    def test_sorted_by_lift_descending(self, make_order):
        pairs = compute_affinity(self._two_pair_orders(make_order))

        assert [(p.product_a_id, p.product_b_id) for p in pairs] == [("1", "2"), ("3", "4")]
        assert pairs[0].lift == 3.3333
        assert pairs[1].lift == 1.6667
        assert pairs[1].confidence == 0.5

    def test_truncated_to_max_pairs(self, make_order):
        pairs = compute_affinity(self._two_pair_orders(make_order), AffinityConfig(max_pairs=1))
        assert len(pairs) == 1
        assert pairs[0].product_a_id == "1"

    def test_min_confidence_filter(self, make_order):
        pairs = compute_affinity(self._two_pair_orders(make_order), AffinityConfig(min_confidence=0.6))
        assert [(p.product_a_id, p.product_b_id) for p in pairs] == [("1", "2")]

    def test_min_co_occurrence_filter(self, make_order):
        orders = _basket_orders(make_order, [["1", "2"]] * 2 + [["3", "4"]] * 3)
        pairs = compute_affinity(orders, AffinityConfig(min_co_occurrence=3))
        assert [(p.product_a_id, p.product_b_id) for p in pairs] == [("3", "4")]

    def test_each_unordered_pair_reported_once(self, make_order):
        orders = _basket_orders(make_order, [["1", "2", "3"]] * 4 + [["2", "1"]] * 4)
        pairs = compute_affinity(orders)
        keys = [p.key for p in pairs]
        assert len(keys) == len(set(keys))
        assert all(0 <= p.confidence <= 1 for p in pairs)
        assert all(p.lift > 0 for p in pairs)


# ────────────────────────────────────────────
# PARTITIONED COUNTING
# ────────────────────────────────────────────


class TestPartitionedCounting:

    @staticmethod
    def _baskets():
        baskets = []
        for i in range(200):
            basket = {str(i % 7), str(i % 5 + 10)}
            if i % 3 == 0:
                basket.add("99")
            baskets.append(tuple(sorted(basket, key=product_sort_key)))
        return baskets

    def test_partitioned_counts_match_serial(self):
        baskets = self._baskets()
        serial = count_partition(baskets)
        parallel = count_co_occurrences(baskets, AffinityConfig(workers=4, partition_size=17))
        assert parallel == serial

    def test_partitioned_affinity_matches_serial(self, make_order):
        orders = [make_order(i, 40.0, basket) for i, basket in enumerate(self._baskets())]
        serial = compute_affinity(orders, AffinityConfig(workers=1))
        parallel = compute_affinity(orders, AffinityConfig(workers=3, partition_size=25))
        assert [p.to_dict() for p in parallel] == [p.to_dict() for p in serial]


# ────────────────────────────────────────────
# ERRORS
# ────────────────────────────────────────────


class TestAffinityErrors:

    def test_zero_quantity_raises(self):
        orders = [Order(id="1", total_price=10.0, line_items=(LineItem("1", "Tee", 0, 10.0),))]
        with pytest.raises(InputError):
            compute_affinity(orders)

    def test_missing_product_id_raises(self):
        orders = [Order(id="1", total_price=10.0, line_items=(LineItem("", "Tee", 1, 10.0),))]
        with pytest.raises(InputError):
            compute_affinity(orders)

    def test_duplicate_pair_is_computation_error(self):
        pair = AffinityPair("1", "Tee", "2", "Cap", 4, 0.5, 1.2)
        flipped = AffinityPair("2", "Cap", "1", "Tee", 4, 0.5, 1.2)
        with pytest.raises(ComputationError):
            check_affinity_invariants([pair, flipped])

    def test_self_pair_is_computation_error(self):
        with pytest.raises(ComputationError):
            check_affinity_invariants([AffinityPair("1", "Tee", "1", "Tee", 4, 0.5, 1.2)])
