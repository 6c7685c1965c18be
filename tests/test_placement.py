"""
Placement Resolver Tests

Covers binding subject matching, PlacementRule lookups, ordering and error
propagation.
"""

import pytest
from unittest.mock import Mock

from policy_rbac_sync.libs.core.exceptions import ObjectStoreError, ResourceNotFoundError
from policy_rbac_sync.libs.placement import PlacementResolver

from test_constants import CommonTestConstants as C, InMemoryPolicyStore, TestUtilities


@pytest.fixture
def store():
    return InMemoryPolicyStore()


class TestResolveClusters:
    """Test cluster resolution through binding -> rule -> decisions"""

    def test_single_binding_returns_decisions_in_order(self, store):
        # Arrange
        store.add_binding(TestUtilities.placement_binding())
        store.add_rule(TestUtilities.placement_rule(["c1", "c2", "c3"]))

        # Act
        clusters = PlacementResolver(store).resolve_clusters(C.NAMESPACE, C.POLICY_NAME)

        # Assert
        assert clusters == ["c1", "c2", "c3"]

    def test_overlapping_bindings_keep_duplicates(self, store):
        """Two bindings whose rules both decide c1 yield c1 twice"""
        store.add_binding(TestUtilities.placement_binding(rule_name="rule-a", name="binding-a"))
        store.add_binding(TestUtilities.placement_binding(rule_name="rule-b", name="binding-b"))
        store.add_rule(TestUtilities.placement_rule(["c1"], name="rule-a"))
        store.add_rule(TestUtilities.placement_rule(["c1"], name="rule-b"))

        clusters = PlacementResolver(store).resolve_clusters(C.NAMESPACE, C.POLICY_NAME)

        assert clusters == ["c1", "c1"]

    def test_bindings_are_visited_in_list_order(self, store):
        store.add_binding(TestUtilities.placement_binding(rule_name="rule-b", name="binding-b"))
        store.add_binding(TestUtilities.placement_binding(rule_name="rule-a", name="binding-a"))
        store.add_rule(TestUtilities.placement_rule(["east"], name="rule-a"))
        store.add_rule(TestUtilities.placement_rule(["west"], name="rule-b"))

        clusters = PlacementResolver(store).resolve_clusters(C.NAMESPACE, C.POLICY_NAME)

        assert clusters == ["west", "east"]

    def test_binding_for_other_policy_is_ignored(self, store):
        store.add_binding(TestUtilities.placement_binding(policy_name="other-policy"))
        store.add_rule(TestUtilities.placement_rule(["c1"]))

        clusters = PlacementResolver(store).resolve_clusters(C.NAMESPACE, C.POLICY_NAME)

        assert clusters == []
        assert ('get_placement_rule', C.NAMESPACE, C.PLACEMENT_RULE) not in store.calls

    def test_subject_with_wrong_group_or_kind_is_ignored(self, store):
        store.add_binding(TestUtilities.placement_binding(subjects=[
            {'apiGroup': 'example.com', 'kind': 'Policy', 'name': C.POLICY_NAME},
            {'apiGroup': 'policy.open-cluster-management.io', 'kind': 'PolicySet', 'name': C.POLICY_NAME},
        ]))
        store.add_rule(TestUtilities.placement_rule(["c1"]))

        assert PlacementResolver(store).resolve_clusters(C.NAMESPACE, C.POLICY_NAME) == []

    def test_placement_ref_to_other_kind_is_ignored(self, store):
        store.add_binding(TestUtilities.placement_binding(
            ref_kind="Placement", ref_group="cluster.open-cluster-management.io"))

        assert PlacementResolver(store).resolve_clusters(C.NAMESPACE, C.POLICY_NAME) == []

    def test_rule_without_status_yields_no_clusters(self, store):
        store.add_binding(TestUtilities.placement_binding())
        rule = TestUtilities.placement_rule([])
        del rule['status']
        store.add_rule(rule)

        assert PlacementResolver(store).resolve_clusters(C.NAMESPACE, C.POLICY_NAME) == []

    def test_no_bindings_yields_no_clusters(self, store):
        assert PlacementResolver(store).resolve_clusters(C.NAMESPACE, C.POLICY_NAME) == []

    def test_matching_binding_is_logged_by_kind(self, store, caplog):
        store.add_binding(TestUtilities.placement_binding())
        store.add_rule(TestUtilities.placement_rule(["c1"]))

        with caplog.at_level("DEBUG", logger="policy_rbac_sync.libs.placement.resolver"):
            PlacementResolver(store).resolve_clusters(C.NAMESPACE, C.POLICY_NAME)

        assert f"Found PlacementBinding {C.NAMESPACE}/{C.BINDING_NAME} for policy {C.POLICY_NAME}" in caplog.text


class TestResolveErrors:
    """Test that read failures abort resolution"""

    def test_missing_placement_rule_is_an_error(self, store):
        store.add_binding(TestUtilities.placement_binding())

        with pytest.raises(ResourceNotFoundError):
            PlacementResolver(store).resolve_clusters(C.NAMESPACE, C.POLICY_NAME)

    def test_list_failure_propagates(self):
        mock_store = Mock()
        mock_store.list_placement_bindings.side_effect = ObjectStoreError("boom", status=500)

        with pytest.raises(ObjectStoreError) as exc_info:
            PlacementResolver(mock_store).resolve_clusters(C.NAMESPACE, C.POLICY_NAME)

        assert exc_info.value.status == 500

    def test_deadline_is_passed_to_every_read(self):
        mock_store = Mock()
        mock_store.list_placement_bindings.return_value = [TestUtilities.placement_binding()]
        mock_store.get_placement_rule.return_value = TestUtilities.placement_rule(["c1"])
        deadline = Mock()

        PlacementResolver(mock_store).resolve_clusters(C.NAMESPACE, C.POLICY_NAME, deadline=deadline)

        mock_store.list_placement_bindings.assert_called_once_with(C.NAMESPACE, deadline=deadline)
        mock_store.get_placement_rule.assert_called_once_with(C.NAMESPACE, C.PLACEMENT_RULE, deadline=deadline)
