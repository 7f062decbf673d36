"""Tests for parent/child derivation rules

Run with pytest from project root:
    pytest tests/test_derivation_gate.py -v
"""

import pytest

from errors import DependencyError, ValidationError
from models.category import child_category_of, get_category, private_storage_key, public_storage_key


class TestCategories:
    """Tests for the category table"""

    def test_reference_categories(self):
        assert get_category("building_ref").is_reference is True
        assert get_category("building_sprite").is_reference is False
        assert get_category("terrain").is_reference is False

    def test_child_category_of(self):
        assert child_category_of("building_ref").id == "building_sprite"
        assert child_category_of("character_ref").id == "npc"
        assert child_category_of("terrain") is None

    def test_storage_keys(self):
        assert private_storage_key("character_ref", "guard", 2) == "refs/guard_ref_v2.png"
        assert private_storage_key("scene", "tavern", 1) == "scenes/tavern_v1.png"
        assert private_storage_key("npc", "guard", 1) == "raw/npc_guard_raw_v1.png"
        assert public_storage_key("npc", "guard", 1) == "sprites/npc/guard_v1.webp"
        assert public_storage_key("scene", "tavern", 3) == "scenes/tavern_v3.webp"


class TestDerivationGate:
    """Tests for DerivationGate through the controller"""

    def test_generate_from_unapproved_parent(self, pipeline):
        ref = pipeline.controller.generate("character_ref", "guard", "guard sheet")
        with pytest.raises(DependencyError) as exc_info:
            pipeline.controller.generate_from_ref(ref.id, "guard sprite")
        assert exc_info.value.details["parent_status"] == "awaiting_review"
        assert pipeline.registry.list_by_category("npc") == []

    def test_generate_from_missing_parent(self, pipeline):
        with pytest.raises(DependencyError):
            pipeline.controller.generate_from_ref(42, "guard sprite")

    def test_generate_from_parent_without_children(self, pipeline, approved):
        terrain = approved("terrain", "grass")
        with pytest.raises(DependencyError):
            pipeline.controller.generate_from_ref(terrain.id, "grass sprite")

    def test_generate_from_ref_links_parent(self, pipeline, approved):
        ref = approved("character_ref", "guard")
        child = pipeline.controller.generate_from_ref(ref.id, "guard sprite", variant=2)
        assert child.category == "npc"
        assert child.asset_key == "guard"
        assert child.variant == 2
        assert child.parent_asset_id == ref.id
        assert child.private_storage_key == "raw/npc_guard_raw_v2.png"
        assert pipeline.registry.get(ref.id).status.value == "approved"

    def test_direct_child_generation_needs_approved_ref(self, pipeline, approved):
        with pytest.raises(DependencyError):
            pipeline.controller.generate("npc", "guard", "guard sprite")
        ref = approved("character_ref", "guard")
        child = pipeline.controller.generate("npc", "guard", "guard sprite")
        assert child.parent_asset_id == ref.id

    def test_avatar_layers_share_avatar_base_ref(self, pipeline, approved):
        with pytest.raises(DependencyError) as exc_info:
            pipeline.controller.generate("avatar", "base_light", "avatar base")
        assert exc_info.value.details["ref_asset_key"] == "avatar_base"

        ref = approved("character_ref", "avatar_base")
        layer = pipeline.controller.generate("avatar", "outfit_red", "red outfit")
        assert layer.parent_asset_id == ref.id

    def test_scene_requires_approved_base_avatar(self, pipeline, approved):
        with pytest.raises(DependencyError):
            pipeline.controller.generate("scene", "tavern", "tavern scene")
        approved("character_ref", "avatar_base")
        approved("avatar", "outfit_red")
        with pytest.raises(DependencyError):
            pipeline.controller.generate("scene", "tavern", "tavern scene")
        approved("avatar", "base_light")
        scene = pipeline.controller.generate("scene", "tavern", "tavern scene")
        assert scene.parent_asset_id is None

    def test_prefers_active_parent(self, pipeline, approved):
        approved("character_ref", "guard", variant=1)
        second = approved("character_ref", "guard", variant=2)
        first_id = pipeline.registry.find("character_ref", "guard", 1).id
        pipeline.controller.set_active(first_id)
        child = pipeline.controller.generate("npc", "guard", "guard sprite")
        assert child.parent_asset_id == first_id
        assert child.parent_asset_id != second.id

    def test_unknown_category(self, pipeline):
        with pytest.raises(ValidationError):
            pipeline.gate.require_category("spaceship")

    def test_list_approved_refs(self, pipeline, approved):
        ref = approved("building_ref", "restaurant")
        approved("building_ref", "casino")
        pipeline.controller.generate("building_ref", "motel", "motel sheet")
        sprite = pipeline.controller.generate_from_ref(ref.id, "restaurant sprite")
        pipeline.controller.approve(sprite.id)
        pipeline.controller.generate_from_ref(ref.id, "restaurant sprite alt", variant=2)

        refs = {r["asset_key"]: r for r in pipeline.gate.list_approved_refs()}
        assert set(refs) == {"restaurant", "casino"}
        assert refs["restaurant"]["approved_children"] == 1
        assert refs["restaurant"]["child_category"] == "building_sprite"
        assert refs["casino"]["approved_children"] == 0
