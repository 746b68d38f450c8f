# tests/property/test_manager_properties.py
"""Property tests for result aggregation."""

from hypothesis import given
from hypothesis import strategies as st

from shardscan.contracts import CheckResult, CheckResultType
from shardscan.invariants import aggregate_results

outcomes = st.lists(st.sampled_from(list(CheckResultType)), max_size=8)


def results_for(statuses: list[CheckResultType]) -> list[CheckResult]:
    return [CheckResult(status, f"invariant-{i}") for i, status in enumerate(statuses)]


class TestAggregationProperties:
    @given(statuses=outcomes, data=st.data())
    def test_overall_status_ignores_order(self, statuses: list[CheckResultType], data: st.DataObject) -> None:
        shuffled = data.draw(st.permutations(statuses))

        assert aggregate_results(results_for(statuses)).check_result_type == aggregate_results(
            results_for(shuffled)
        ).check_result_type

    @given(statuses=outcomes)
    def test_overall_is_most_severe(self, statuses: list[CheckResultType]) -> None:
        aggregated = aggregate_results(results_for(statuses))

        expected = max(statuses, key=lambda s: s.severity, default=CheckResultType.HEALTHY)
        assert aggregated.check_result_type == expected
        assert len(aggregated.check_results) == len(statuses)

    @given(statuses=outcomes)
    def test_determining_invariant_is_first_with_overall_status(self, statuses: list[CheckResultType]) -> None:
        aggregated = aggregate_results(results_for(statuses))

        if aggregated.check_result_type == CheckResultType.HEALTHY:
            assert aggregated.determining_invariant_name is None
        else:
            first = statuses.index(aggregated.check_result_type)
            assert aggregated.determining_invariant_name == f"invariant-{first}"
