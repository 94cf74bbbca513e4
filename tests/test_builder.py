"""
Builder tests: ordering, validation, reference resolution and grants.
"""
import pytest

from infragraph.errors import (
    CycleDetected,
    DuplicateName,
    GraphError,
    ProvisionError,
    ProvisionFailed,
    UnknownScope,
    UnresolvedReference,
)
from infragraph.graph import builder
from infragraph.models.resource import (
    AccessGrant,
    Interpolation,
    Reference,
    ResourceSpec,
    SanitizedName,
)
from infragraph.provisioners.local import LocalProvisioner


def _lab_specs():
    """Storage-queue lab, declared out of dependency order."""
    return [
        ResourceSpec("StorageQueue", "storage-queue", {
            "resource_group_name": Reference("ResourceGroup", "name"),
            "account_name": Reference("StorageAccount", "name"),
            "queue_name": "training-queue",
        }, parent="StorageAccount"),
        ResourceSpec("StorageAccount", "storage-account", {
            "resource_group_name": Reference("ResourceGroup", "name"),
            "account_name": SanitizedName("az204-Lab_dev az204q", 24),
        }, parent="ResourceGroup"),
        ResourceSpec("ResourceGroup", "resource-group", {}),
    ]


def _edges(specs):
    return [(s.name, dep) for s in specs for dep in builder.dependencies(s)]


# --------------------------------------------------------- Ordering
class TestOrdering:
    def test_dependencies_parent_first(self):
        spec = _lab_specs()[0]
        assert builder.dependencies(spec) == ["StorageAccount", "ResourceGroup"]

    def test_dependencies_deduplicated(self):
        spec = ResourceSpec("X", "blob", {
            "a": Reference("Y", "name"),
            "b": Interpolation("${Y.id}/${Z.name}"),
        }, parent="Y")
        assert builder.dependencies(spec) == ["Y", "Z"]

    def test_plan_respects_every_edge(self):
        specs = _lab_specs()
        order = builder.plan(specs)
        assert sorted(order) == sorted(s.name for s in specs)
        for src, dst in _edges(specs):
            assert order.index(dst) < order.index(src), f"{dst} must precede {src}"

    def test_independent_nodes_keep_declaration_order(self):
        specs = [ResourceSpec(n, "resource-group") for n in ("C", "A", "B")]
        assert builder.plan(specs) == ["C", "A", "B"]

    def test_materialize_called_in_topological_order(self):
        specs = _lab_specs()
        prov = LocalProvisioner()
        builder.build(specs, prov)
        assert prov.order == ["ResourceGroup", "StorageAccount", "StorageQueue"]

    def test_build_is_deterministic(self):
        first, second = LocalProvisioner(), LocalProvisioner()
        r1 = builder.build(_lab_specs(), first)
        r2 = builder.build(_lab_specs(), second)
        assert first.order == second.order
        assert r1.to_dict() == r2.to_dict()

    def test_long_chain_declared_dependents_first(self):
        specs = [ResourceSpec("N0", "resource-group")]
        specs += [ResourceSpec(f"N{i}", "blob", {"x": Reference(f"N{i - 1}")}) for i in range(1, 1500)]
        specs.reverse()
        assert builder.plan(specs) == [f"N{i}" for i in range(1500)]

    def test_long_cycle_reported(self):
        specs = [ResourceSpec(f"N{i}", "blob", {"x": Reference(f"N{(i + 1) % 1500}")}) for i in range(1500)]
        with pytest.raises(CycleDetected) as exc:
            builder.plan(specs)
        assert exc.value.path[0] == exc.value.path[-1] == "N0"
        assert len(exc.value.path) == 1501


# --------------------------------------------------------- Validation
class TestValidation:
    def test_self_reference_is_a_cycle(self):
        specs = [ResourceSpec("A", "blob", {"x": Reference("A", "name")})]
        prov = LocalProvisioner()
        with pytest.raises(CycleDetected) as exc:
            builder.build(specs, prov)
        assert exc.value.path == ["A", "A"]
        assert prov.calls == []

    def test_cycle_path_reported(self):
        specs = [
            ResourceSpec("A", "blob", {"x": Reference("B")}),
            ResourceSpec("B", "blob", {"x": Reference("C")}),
            ResourceSpec("C", "blob", {"x": Reference("A")}),
        ]
        with pytest.raises(CycleDetected) as exc:
            builder.plan(specs)
        assert exc.value.path == ["A", "B", "C", "A"]
        assert "A -> B -> C -> A" in str(exc.value)

    def test_parent_edge_participates_in_cycles(self):
        specs = [
            ResourceSpec("Parent", "servicebus-namespace", {"x": Reference("Child", "name")}),
            ResourceSpec("Child", "servicebus-queue", {}, parent="Parent"),
        ]
        with pytest.raises(CycleDetected):
            builder.plan(specs)

    def test_cycle_behind_valid_prefix_issues_no_calls(self):
        specs = [
            ResourceSpec("Root", "resource-group"),
            ResourceSpec("A", "blob", {"x": Reference("B")}, parent="Root"),
            ResourceSpec("B", "blob", {"x": Reference("A")}),
        ]
        prov = LocalProvisioner()
        with pytest.raises(CycleDetected):
            builder.build(specs, prov)
        assert prov.calls == []

    def test_duplicate_name(self):
        specs = [ResourceSpec("A", "blob"), ResourceSpec("A", "blob")]
        with pytest.raises(DuplicateName) as exc:
            builder.plan(specs)
        assert exc.value.name == "A"

    def test_reference_to_absent_resource(self):
        specs = [ResourceSpec("A", "blob", {"x": Reference("Ghost", "name")})]
        with pytest.raises(UnresolvedReference) as exc:
            builder.plan(specs)
        assert exc.value.name == "A"
        assert exc.value.reference == "Ghost.name"

    def test_missing_parent(self):
        specs = [ResourceSpec("A", "blob", parent="Ghost")]
        with pytest.raises(UnresolvedReference):
            builder.plan(specs)

    def test_missing_output_attribute(self):
        specs = [
            ResourceSpec("RG", "resource-group"),
            ResourceSpec("A", "blob", {"x": Reference("RG", "no_such_field")}),
        ]
        prov = LocalProvisioner()
        with pytest.raises(UnresolvedReference) as exc:
            builder.build(specs, prov)
        assert "RG" in exc.value.resolved
        assert prov.order == ["RG"]

    def test_unknown_scope_issues_nothing(self):
        specs = _lab_specs()
        grants = [AccessGrant("user1", "Storage Queue Data Message Sender", "Nowhere")]
        prov = LocalProvisioner()
        with pytest.raises(UnknownScope) as exc:
            builder.build(specs, prov, grants)
        assert exc.value.name == "Nowhere"
        assert prov.calls == []
        assert prov.grants == []

    def test_output_reference_to_absent_resource(self):
        with pytest.raises(UnresolvedReference):
            builder.plan(_lab_specs(), outputs={"url": Interpolation("https://${Ghost.name}")})

    def test_all_errors_are_graph_errors(self):
        for cls in (CycleDetected, DuplicateName, UnknownScope, UnresolvedReference, ProvisionFailed):
            assert issubclass(cls, GraphError)


# --------------------------------------------------------- Resolution
class TestResolution:
    def test_reference_receives_literal_value(self):
        prov = LocalProvisioner()
        result = builder.build(_lab_specs(), prov)
        queue_config = dict((name, cfg) for _, name, cfg in prov.calls)["StorageQueue"]
        assert queue_config["account_name"] == result.resources["StorageAccount"]["name"]
        assert queue_config["resource_group_name"] == result.resources["ResourceGroup"]["name"]

    def test_no_placeholder_reaches_provisioner(self):
        prov = LocalProvisioner()
        builder.build(_lab_specs(), prov)
        for _, _, cfg in prov.calls:
            for value in cfg.values():
                assert not isinstance(value, (Reference, Interpolation, SanitizedName))

    def test_sanitized_name_applied(self):
        result = builder.build(_lab_specs(), LocalProvisioner())
        assert result.resources["StorageAccount"]["name"] == "az204labdevaz204q"

    def test_interpolation_and_nested_values(self):
        specs = [
            ResourceSpec("SA", "storage-account", {"account_name": "labsa"}),
            ResourceSpec("App", "web-app", {
                "site_config": {"app_settings": [
                    {"name": "QUEUE", "value": Interpolation("https://${SA.name}.queue.core.windows.net")},
                    {"name": "BLOB", "value": Reference("SA", "primary_endpoints.blob")},
                ]},
            }),
        ]
        result = builder.build(specs, LocalProvisioner())
        settings = result.resources["App"]["site_config"]["app_settings"]
        assert settings[0]["value"] == "https://labsa.queue.core.windows.net"
        assert settings[1]["value"] == "https://labsa.blob.core.windows.net/"

    def test_outputs_resolved(self):
        outputs = {
            "url": Interpolation("https://${StorageAccount.name}.queue.core.windows.net"),
            "queue": Reference("StorageQueue", "name"),
            "literal": "static",
        }
        result = builder.build(_lab_specs(), LocalProvisioner(), outputs=outputs)
        assert result.outputs == {
            "url": "https://az204labdevaz204q.queue.core.windows.net",
            "queue": "training-queue",
            "literal": "static",
        }

    def test_resolved_resources_are_immutable(self):
        result = builder.build(_lab_specs(), LocalProvisioner())
        with pytest.raises(TypeError):
            result.resources["StorageQueue"].outputs["name"] = "other"


# --------------------------------------------------------- Grants
class TestGrants:
    def test_end_to_end_namespace_queue(self):
        specs = [
            ResourceSpec("Q", "servicebus-queue", {
                "namespace_name": Reference("NS", "name"),
                "queue_name": "q1",
            }, parent="NS"),
            ResourceSpec("NS", "servicebus-namespace", {"namespace_name": "lab-sbns"}),
        ]
        grants = [AccessGrant("user1", "Sender", "Q")]
        prov = LocalProvisioner()
        result = builder.build(specs, prov, grants)

        assert prov.order == ["NS", "Q"]
        assert prov.calls[1][2]["namespace_name"] == "lab-sbns"
        assert len(prov.grants) == 1
        q_id = result.resources["Q"]["id"]
        assert prov.grants[0]["scope"] == q_id
        assert prov.grants[0]["scope"] != result.resources["NS"]["id"]
        assert result.grants[0].scope == "Q"
        assert result.grants[0].scope_id == q_id

    def test_ancestor_scope_accepted(self):
        grants = [AccessGrant("user1", "Contributor", "ResourceGroup")]
        result = builder.build(_lab_specs(), LocalProvisioner(), grants)
        assert result.grants[0].scope == "ResourceGroup"

    def test_grants_issued_after_all_resources(self):
        events = []

        class Recorder(LocalProvisioner):
            def materialize(self, kind, name, config):
                events.append(("materialize", name))
                return super().materialize(kind, name, config)

            def grant(self, principal, role, scope):
                events.append(("grant", role))
                super().grant(principal, role, scope)

        grants = [AccessGrant("u", "Storage Queue Data Message Sender", "StorageQueue")]
        builder.build(_lab_specs(), Recorder(), grants)
        assert events[-1] == ("grant", "Storage Queue Data Message Sender")
        assert [e[0] for e in events[:3]] == ["materialize"] * 3


# --------------------------------------------------------- Failure and resume
class TestFailure:
    def test_provision_failure_aborts_with_partial_map(self):
        prov = LocalProvisioner(fail_at=["StorageAccount"])
        with pytest.raises(ProvisionFailed) as exc:
            builder.build(_lab_specs(), prov)
        assert exc.value.name == "StorageAccount"
        assert list(exc.value.resolved) == ["ResourceGroup"]
        assert prov.order == ["ResourceGroup", "StorageAccount"]
        assert exc.value.cause is not None

    def test_progress_callback_sees_each_resource(self):
        seen = []
        builder.build(_lab_specs(), LocalProvisioner(), progress=lambda spec, res: seen.append(spec.name))
        assert seen == ["ResourceGroup", "StorageAccount", "StorageQueue"]

    def test_grant_failure_carries_every_resource(self):
        class DenyingProvisioner(LocalProvisioner):
            def grant(self, principal, role, scope):
                raise ProvisionError(f"authorization failed for {role}")

        grants = [AccessGrant("u", "Storage Queue Data Message Sender", "StorageQueue")]
        with pytest.raises(ProvisionFailed) as exc:
            builder.build(_lab_specs(), DenyingProvisioner(), grants)
        assert exc.value.name == "StorageQueue"
        assert set(exc.value.resolved) == {"ResourceGroup", "StorageAccount", "StorageQueue"}
        assert isinstance(exc.value.cause, ProvisionError)
