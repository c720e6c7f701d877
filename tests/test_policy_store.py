"""Policy store: validation, atomic activation and export."""
import threading

import pytest

from policygate.core.exceptions import InvalidPolicy
from policygate.services.decision import DecisionEngine
from policygate.services.policy import Resource, Subject
from policygate.services.policy_store import PolicyStore, compile_policy
from tests.conftest import BLOG_POLICY_PATH, blog_policy


def _errors(document):
    with pytest.raises(InvalidPolicy) as excinfo:
        compile_policy(document)
    return " | ".join(excinfo.value.errors)


class TestLoad:
    """Loading and replacing policy snapshots."""

    def test_initial_snapshot_is_empty(self):
        store = PolicyStore()
        snapshot = store.current_snapshot()
        assert snapshot.version == 0
        assert not snapshot.roles
        assert not snapshot.resource_types

    def test_load_activates_new_version(self):
        store = PolicyStore()
        snapshot = store.load(blog_policy())
        assert snapshot.version == 1
        assert store.current_snapshot() is snapshot
        assert list(snapshot.roles) == ["admin", "writer", "commenter"]
        assert set(snapshot.resource_types) == {"post", "author", "comment"}

        second = store.load(blog_policy())
        assert second.version == 2
        assert store.version == 2

    def test_failed_load_keeps_previous_snapshot(self):
        store = PolicyStore(blog_policy())
        before = store.current_snapshot()
        document = blog_policy()
        document["roles"].append({"name": "admin"})

        with pytest.raises(InvalidPolicy):
            store.load(document)

        assert store.current_snapshot() is before
        assert store.version == 1

    def test_failed_commit_keeps_previous_snapshot(self):
        store = PolicyStore(blog_policy())
        before = store.current_snapshot()

        def commit(snapshot):
            raise RuntimeError("database unavailable")

        with pytest.raises(RuntimeError):
            store.load(blog_policy(), commit=commit)

        assert store.current_snapshot() is before
        assert store.version == 1
        # The version handed to the failed commit is not issued again
        assert store.load(blog_policy()).version == 3

    def test_commit_sees_new_snapshot_before_swap(self):
        store = PolicyStore(blog_policy())
        seen = []
        store.load(blog_policy(), commit=lambda snapshot: seen.append((snapshot.version, store.version)))
        assert seen == [(2, 1)]
        assert store.version == 2

    def test_snapshot_mappings_are_read_only(self):
        snapshot = PolicyStore(blog_policy()).current_snapshot()
        with pytest.raises(TypeError):
            snapshot.roles["intruder"] = snapshot.roles["admin"]
        with pytest.raises(TypeError):
            snapshot.resource_types["post"].attributes["published"] = None

    def test_validate_does_not_activate(self):
        store = PolicyStore()
        snapshot = store.validate(blog_policy())
        assert "writer" in snapshot.roles
        assert store.version == 0
        assert not store.current_snapshot().roles

    def test_load_file_json(self):
        store = PolicyStore()
        snapshot = store.load_file(BLOG_POLICY_PATH)
        assert snapshot.name == "blog"

    def test_load_file_yaml(self, tmp_path):
        path = tmp_path / "policy.yaml"
        path.write_text(
            "name: tiny\n"
            "resource_types:\n"
            "  - name: post\n"
            "    actions: [read]\n"
            "roles:\n"
            "  - name: reader\n"
            "    permissions:\n"
            "      - {action: read, resource_type: post}\n",
            encoding="utf-8",
        )
        snapshot = PolicyStore().load_file(path)
        assert snapshot.name == "tiny"
        assert snapshot.roles["reader"].permissions[0].action == "read"

    def test_load_file_unreadable(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        store = PolicyStore()
        with pytest.raises(InvalidPolicy):
            store.load_file(path)
        assert store.version == 0

    def test_top_level_permissions_join_their_role(self):
        document = blog_policy()
        document["permissions"] = [
            {"role": "commenter", "action": "delete", "resource_type": "comment"}
        ]
        snapshot = compile_policy(document)
        actions = [p.action for p in snapshot.roles["commenter"].permissions]
        assert actions == ["create", "update", "delete"]


class TestInvalidPolicy:
    """Every structural or reference error rejects the whole document."""

    def test_not_an_object(self):
        assert "object" in _errors(["roles"])

    def test_unknown_top_level_key(self):
        document = blog_policy()
        document["rolez"] = []
        assert "rolez" in _errors(document)

    def test_duplicate_role(self):
        document = blog_policy()
        document["roles"].append({"name": "writer"})
        assert "duplicate role name 'writer'" in _errors(document)

    def test_duplicate_resource_type(self):
        document = blog_policy()
        document["resource_types"].append({"name": "post"})
        assert "duplicate resource type name 'post'" in _errors(document)

    def test_permission_with_undeclared_resource_type(self):
        document = blog_policy()
        document["roles"][1]["permissions"].append({"action": "create", "resource_type": "page"})
        assert "undeclared resource type 'page'" in _errors(document)

    def test_permission_with_undeclared_action(self):
        document = blog_policy()
        document["roles"][1]["permissions"].append({"action": "publish", "resource_type": "post"})
        assert "action 'publish' is not declared on 'post'" in _errors(document)

    def test_top_level_permission_with_undeclared_role(self):
        document = blog_policy()
        document["permissions"] = [{"role": "editor", "action": "read", "resource_type": "post"}]
        assert "undeclared role 'editor'" in _errors(document)

    def test_condition_with_undeclared_attribute(self):
        document = blog_policy()
        document["roles"][1]["permissions"].append({
            "action": "delete",
            "resource_type": "post",
            "condition": {"attr": "resource.archived", "op": "=", "value": True},
        })
        assert "undeclared attribute 'resource.archived'" in _errors(document)

    def test_condition_with_undeclared_subject_attribute(self):
        document = blog_policy()
        document["user_sets"].append({
            "name": "seniors",
            "condition": {"attr": "subject.seniority", "op": ">", "value": 3},
        })
        assert "undeclared attribute 'subject.seniority'" in _errors(document)

    def test_user_set_cannot_read_resource_attributes(self):
        document = blog_policy()
        document["user_sets"].append({
            "name": "odd",
            "condition": {"attr": "resource.published", "op": "=", "value": True},
        })
        assert "resource attributes cannot be referenced here" in _errors(document)

    def test_resource_set_used_on_other_resource_type(self):
        document = blog_policy()
        document["roles"][2]["permissions"].append({
            "action": "delete",
            "resource_type": "comment",
            "condition": {"resource_set": "draft_posts"},
        })
        assert "applies to 'post', not 'comment'" in _errors(document)

    def test_undeclared_user_set(self):
        document = blog_policy()
        document["roles"][1]["permissions"].append({
            "action": "delete",
            "resource_type": "post",
            "condition": {"user_set": "editors"},
        })
        assert "undeclared user_set 'editors'" in _errors(document)

    def test_user_set_cannot_read_resource_key(self):
        document = blog_policy()
        document["user_sets"].append({
            "name": "by_key",
            "condition": {"attr": "resource.key", "op": "=", "value": "1"},
        })
        assert "resource attributes cannot be referenced here" in _errors(document)

    def test_resource_set_cannot_read_subject_id(self):
        document = blog_policy()
        document["resource_sets"].append({
            "name": "mine",
            "resource_type": "post",
            "condition": {"attr": "resource.author_id", "op": "=", "ref": "subject.id"},
        })
        assert "subject attributes cannot be referenced here" in _errors(document)

    def test_wildcard_permission_cannot_read_resource_attributes(self):
        document = blog_policy()
        document["roles"][0]["permissions"] = [{
            "action": "*",
            "resource_type": "*",
            "condition": {"attr": "resource.published", "op": "=", "value": True},
        }]
        assert "resource attributes cannot be referenced here" in _errors(document)

    def test_literal_must_match_declared_type(self):
        document = blog_policy()
        document["resource_sets"][0]["condition"]["value"] = "maybe"
        assert "is not a boolean" in _errors(document)

    def test_ordering_operator_needs_number(self):
        document = blog_policy()
        document["resource_sets"][0]["condition"]["op"] = ">"
        assert "compares numbers only" in _errors(document)

    def test_enum_requires_values(self):
        document = blog_policy()
        document["resource_types"][0]["attributes"]["category"] = {"type": "enum"}
        assert "enum attributes need a non-empty 'values' list" in _errors(document)

    def test_builtin_attribute_names_are_reserved(self):
        document = blog_policy()
        document["resource_types"][0]["attributes"]["key"] = "string"
        document["subject_attributes"]["id"] = "string"
        errors = _errors(document)
        assert "'key' is a built-in attribute" in errors
        assert "'id' is a built-in attribute" in errors

    def test_all_errors_reported_together(self):
        document = blog_policy()
        document["roles"].append({"name": "writer"})
        document["roles"][1]["permissions"].append({"action": "create", "resource_type": "page"})
        with pytest.raises(InvalidPolicy) as excinfo:
            compile_policy(document)
        assert len(excinfo.value.errors) >= 2


class TestExport:
    """Export is the canonical document and reloads losslessly."""

    def test_reload_of_export_is_equal(self):
        store = PolicyStore(blog_policy())
        original = store.current_snapshot()

        reloaded = store.load(store.export())

        assert reloaded == original
        assert reloaded.version == original.version + 1

    def test_export_is_stable(self):
        store = PolicyStore(blog_policy())
        exported = store.export()
        store.load(exported)
        assert store.export() == exported

    def test_export_canonicalises_operator_aliases(self):
        document = blog_policy()
        document["user_sets"][0]["condition"]["op"] = "eq"
        store = PolicyStore(document)
        assert store.export()["user_sets"][0]["condition"]["op"] == "="

    def test_export_nests_top_level_permissions(self):
        document = blog_policy()
        document["permissions"] = [{"role": "commenter", "action": "delete", "resource_type": "comment"}]
        store = PolicyStore(document)
        exported = store.export()
        assert "permissions" not in exported
        commenter = next(r for r in exported["roles"] if r["name"] == "commenter")
        assert commenter["permissions"][-1] == {"action": "delete", "resource_type": "comment"}


class TestAtomicSwap:
    """Concurrent loads never expose a half-applied policy."""

    def test_decisions_always_match_one_whole_snapshot(self):
        permissive = blog_policy()
        restrictive = blog_policy()
        restrictive["roles"][1]["permissions"] = []

        store = PolicyStore()
        engine = DecisionEngine(store)
        writer = Subject(id="w@blog.app", roles={"writer"})
        draft = Resource(type="post", attributes={"published": False})
        failures = []
        done = threading.Event()

        def load_loop():
            # Odd versions permit drafts, even versions deny them
            for i in range(200):
                store.load(permissive if i % 2 == 0 else restrictive)
            done.set()

        def decide_loop():
            while not done.is_set():
                decision = engine.decide(writer, "create", draft)
                if decision.policy_version == 0:
                    continue
                expected = decision.policy_version % 2 == 1
                if decision.allowed != expected:
                    failures.append(decision)

        readers = [threading.Thread(target=decide_loop) for _ in range(4)]
        loader = threading.Thread(target=load_loop)
        for thread in readers:
            thread.start()
        loader.start()
        loader.join()
        for thread in readers:
            thread.join()

        assert failures == []
        assert store.version == 200
