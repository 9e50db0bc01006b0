"""Tests for tree interchange import/export and patch application."""

import asyncio

import pytest

from foundry.errors import StoreError, ValidationError
from foundry.graph import CrossReferenceIndex, CrossReferenceLink, RelationType
from foundry.ingestion import (
    PatchApplier,
    export_crossref_json,
    export_source_json,
    flatten_source_tree,
    import_source_json,
    sanitize_filename,
    validate_patch,
)
from foundry.storage import InMemoryNodeStore


def record(node_id, name, items=None, type="Note", description=""):
    return {
        "ID": node_id,
        "Name": name,
        "Type": type,
        "Description": description,
        "Items": items or [],
    }


def snapshot(store):
    return [n.to_dict() for n in asyncio.run(store.list_all())]


@pytest.fixture
def payload():
    return record("root", "Protocol notes", [
        record("fees", "Fee market", [
            record("basefee", "Base fee", description="Burned per block"),
            record("tips", "Priority tips"),
        ]),
        record("blobs", "Blob space", type="Topic"),
    ])


class TestFlattenSourceTree:
    """Tests for nested record flattening."""

    def test_keeps_ids_and_derives_order(self, payload):
        nodes = flatten_source_tree(payload)
        by_id = {n.id: n for n in nodes}

        assert [n.id for n in nodes] == ["root", "fees", "basefee", "tips", "blobs"]
        assert by_id["root"].parent_id is None
        assert by_id["tips"].parent_id == "fees"
        assert by_id["tips"].sort_order == 1
        assert by_id["blobs"].sort_order == 1
        assert by_id["blobs"].type == "Topic"
        assert by_id["basefee"].description == "Burned per block"

    def test_list_of_roots(self):
        nodes = flatten_source_tree([record("a", "A"), record("b", "B")])

        assert [(n.id, n.parent_id, n.sort_order) for n in nodes] == [
            ("a", None, 0),
            ("b", None, 1),
        ]

    def test_items_optional(self):
        nodes = flatten_source_tree({"ID": "a", "Name": "A", "Type": "Note", "Description": ""})
        assert len(nodes) == 1

    @pytest.mark.parametrize("bad", [
        {"ID": "a", "Type": "Note", "Description": ""},
        {"ID": "a", "Name": "A", "Type": 3, "Description": ""},
        {"ID": "", "Name": "A", "Type": "Note", "Description": ""},
        {"ID": "a", "Name": "A", "Type": "Note", "Description": "", "Items": "oops"},
        "not a record",
        [],
    ])
    def test_malformed_payloads_rejected(self, bad):
        with pytest.raises(ValidationError):
            flatten_source_tree(bad)

    def test_malformed_child_rejected(self):
        payload = record("a", "A", [{"ID": "b", "Name": "B"}])
        with pytest.raises(ValidationError, match=r"Items\[0\]"):
            flatten_source_tree(payload)

    def test_duplicate_ids_rejected(self):
        payload = record("a", "A", [record("b", "B"), record("b", "B again")])
        with pytest.raises(ValidationError, match="duplicate"):
            flatten_source_tree(payload)


class TestImportSourceJson:
    """Tests for whole-store replacement."""

    def test_replaces_store_contents(self, payload):
        store = InMemoryNodeStore()
        asyncio.run(import_source_json(store, record("stale", "Old")))

        count = asyncio.run(import_source_json(store, payload))

        assert count == 5
        ids = {n.id for n in asyncio.run(store.list_all())}
        assert ids == {"root", "fees", "basefee", "tips", "blobs"}

    def test_invalid_payload_leaves_store_untouched(self, store):
        before = snapshot(store)

        with pytest.raises(ValidationError):
            asyncio.run(import_source_json(store, {"ID": "x"}))

        assert snapshot(store) == before


class TestExportSourceJson:
    """Tests for rebuilding the nested form."""

    def test_round_trip(self, payload):
        assert export_source_json(flatten_source_tree(payload)) == payload

    def test_multiple_roots_export_as_list(self):
        roots = [record("a", "A"), record("b", "B", [record("c", "C")])]
        assert export_source_json(flatten_source_tree(roots)) == roots

    def test_empty_store_exports_none(self):
        assert export_source_json([]) is None

    def test_children_follow_sort_order(self, sample_nodes):
        exported = export_source_json(sample_nodes)

        assert exported["ID"] == "root"
        assert [item["ID"] for item in exported["Items"]] == ["fees", "blobs"]
        assert [item["ID"] for item in exported["Items"][0]["Items"]] == ["basefee", "tips"]

    def test_crossref_export(self):
        index = CrossReferenceIndex(links={
            "a": [CrossReferenceLink("b", RelationType.SUPPORTS, ["rollup"], 0.5)],
            "b": [CrossReferenceLink("a", RelationType.IS_SUPPORTED_BY, ["rollup"], 0.5)],
        })
        exported = export_crossref_json(index)

        assert exported["a"] == [{
            "target_id": "b",
            "relation": "supports",
            "provenance": ["rollup"],
            "confidence": 0.5,
        }]
        assert exported["b"][0]["relation"] == "is_supported_by"


class TestSanitizeFilename:
    """Tests for export file naming."""

    def test_hyphenates_and_strips(self):
        assert sanitize_filename("Fee Market: EIP-1559") == "fee-market-eip-1559"

    def test_falls_back_when_nothing_left(self):
        assert sanitize_filename("!!!") == "tree"


class TestValidatePatch:
    """Tests for patch validation."""

    @pytest.mark.parametrize("bad", [
        {"op": "remove", "uuid": "a"},
        [{"op": "move", "uuid": "a"}],
        [{"op": "add", "parent_uuid": "a"}],
        [{"op": "add", "parent_uuid": "a", "node": {"Name": "X", "Type": "Note"}}],
        [{"op": "add", "parent_uuid": "a", "node": record("x", "X", [{"Name": "Y"}])}],
        [{"op": "remove"}],
        [{"op": "replace", "uuid": "a", "field": "ID", "value": "b"}],
        [{"op": "replace", "uuid": "a", "field": "Name"}],
        [{"op": "replace", "uuid": "a", "field": "Name", "value": 7}],
        ["remove a"],
    ])
    def test_malformed_patches_rejected(self, bad):
        with pytest.raises(ValidationError):
            validate_patch(bad)

    def test_valid_patch_passes(self):
        patch = [
            {"op": "add", "parent_uuid": "a", "node": {"Name": "X", "Type": "Note", "Description": ""}},
            {"op": "remove", "uuid": "b"},
            {"op": "replace", "uuid": "c", "field": "Description", "value": "new"},
        ]
        assert validate_patch(patch) == patch


class TestPatchApplier:
    """Tests for atomic patch application."""

    def test_add_nested_node(self, store):
        patch = [{
            "op": "add",
            "parent_uuid": "fees",
            "node": {
                "Name": "Burn",
                "Type": "Note",
                "Description": "",
                "Items": [
                    {"Name": "Supply", "Type": "Note", "Description": ""},
                    {"Name": "Issuance", "Type": "Note", "Description": ""},
                ],
            },
        }]
        result = asyncio.run(PatchApplier(store).apply(patch))

        assert len(result.added_ids) == 3
        assert "fees" not in result.added_ids
        burn = asyncio.run(store.get(result.added_ids[0]))
        assert burn.name == "Burn"
        assert burn.parent_id == "fees"
        assert burn.sort_order == 2

        children = asyncio.run(store.children_of(burn.id))
        assert [(c.name, c.sort_order) for c in children] == [("Supply", 0), ("Issuance", 1)]

    def test_remove_and_replace(self, store):
        patch = [
            {"op": "remove", "uuid": "fees"},
            {"op": "replace", "uuid": "blobs", "field": "Name", "value": "Blobs"},
            {"op": "replace", "uuid": "tips", "field": "Name", "value": "Gone already"},
        ]
        result = asyncio.run(PatchApplier(store).apply(patch))

        assert result.operations == 3
        assert result.removed_ids == {"fees", "basefee", "tips"}
        assert result.replaced == 1
        assert result.missing_targets == ["tips"]
        assert asyncio.run(store.get("blobs")).name == "Blobs"

    def test_invalid_patch_applies_nothing(self, store):
        """A bad operation anywhere in the batch aborts it before any mutation."""
        before = snapshot(store)
        patch = [
            {"op": "remove", "uuid": "fees"},
            {"op": "explode", "uuid": "root"},
        ]

        with pytest.raises(ValidationError):
            asyncio.run(PatchApplier(store).apply(patch))

        assert snapshot(store) == before

    def test_store_failure_rolls_back_whole_batch(self, sample_nodes):
        """A persistence error mid-batch undoes the operations before it."""

        class FailingStore(InMemoryNodeStore):
            async def update(self, node_id, changes):
                raise StoreError("connection lost")

        store = FailingStore(sample_nodes)
        before = snapshot(store)
        patch = [
            {"op": "remove", "uuid": "blobs"},
            {"op": "replace", "uuid": "tips", "field": "Name", "value": "Tips"},
        ]

        with pytest.raises(StoreError):
            asyncio.run(PatchApplier(store).apply(patch))

        assert snapshot(store) == before
