"""Tests for avatar and scene composite caching

Run with pytest from project root:
    pytest tests/test_composite_cache.py -v
"""

import pytest

from conftest import make_png
from errors import DependencyError, NotFoundError, ValidationError
from managers.composite_cache import avatar_hash, hash_string, template_hash

SLOT = {"x": 100, "y": 200, "width": 300, "height": 400}


@pytest.fixture
def composites(pipeline):
    return pipeline.composites


@pytest.fixture
def template(composites):
    return composites.upsert_scene_template("tavern", "Tavern", "scenes/tavern_bg.webp", SLOT)


class TestHashes:
    """Tests for the hash helpers"""

    def test_hash_string_is_16_hex_chars(self):
        value = hash_string("bg1|body1")
        assert len(value) == 16
        int(value, 16)

    def test_avatar_hash_ignores_order_and_nulls(self):
        assert avatar_hash(["outfit3", "bg1", "body1"]) == avatar_hash(["bg1", None, "body1", "", "outfit3"])

    def test_avatar_hash_changes_with_any_id(self):
        assert avatar_hash(["bg1", "body1", "outfit3"]) != avatar_hash(["bg1", "body1", "outfit5"])

    def test_avatar_hash_empty_selection(self):
        with pytest.raises(ValidationError):
            avatar_hash([None, ""])

    def test_template_hash_treats_missing_foreground_as_empty(self):
        assert template_hash("bg", None) == template_hash("bg", "") == hash_string("bg|")
        assert template_hash("bg", "fg") != template_hash("bg", None)


class TestAvatarComposite:
    """Tests for upsert_avatar_composite / get_avatar_composite"""

    def test_first_upsert_requires_bytes(self, composites):
        composites.register_avatar_layer("outfit3", "outfit", "avatar/outfit3.webp")
        composites.register_avatar_layer("bg1", "background", "avatar/bg1.webp")
        with pytest.raises(ValidationError) as exc_info:
            composites.upsert_avatar_composite("user-1", "main", ["outfit3", "bg1", "mystery"])
        layers = exc_info.value.details["layers"]
        assert [layer["id"] for layer in layers] == ["bg1", "outfit3", "mystery"]
        assert layers[0]["url"] == "https://cdn.example.test/assets/avatar/bg1.webp"

    def test_store_then_hit(self, composites, pipeline):
        stored = composites.upsert_avatar_composite("user-1", "main", ["bg1", "body1"], make_png(40, 60))
        assert stored["cached"] is False
        assert stored["storage_key"] == "composites/avatar_user-1_main.png"
        assert (stored["width"], stored["height"]) == (40, 60)
        assert pipeline.public_store.exists(stored["storage_key"])

        hit = composites.upsert_avatar_composite("user-1", "main", ["body1", "bg1"])
        assert hit["cached"] is True
        assert hit["url"] == stored["url"]

    def test_same_selection_with_bytes_is_still_a_hit(self, composites, template):
        composites.upsert_avatar_composite("user-1", "main", ["bg1"], make_png())
        composites.cache_composed_scene("tavern", "user-1", make_png())
        again = composites.upsert_avatar_composite("user-1", "main", ["bg1"], make_png(8, 8))
        assert again["cached"] is True
        assert composites.scene_cache_size("user-1") == 1

    def test_get_avatar_composite(self, composites):
        with pytest.raises(NotFoundError):
            composites.get_avatar_composite("nobody")

        # A refused upsert records nothing
        with pytest.raises(ValidationError):
            composites.upsert_avatar_composite("user-1", "main", ["bg1"])
        with pytest.raises(NotFoundError):
            composites.get_avatar_composite("user-1")

        composites.upsert_avatar_composite("user-1", "thumb", ["bg1"], make_png())
        pending = composites.get_avatar_composite("user-1")
        assert pending["cached"] is False
        assert pending["avatar_hash"] == avatar_hash(["bg1"])

        composites.upsert_avatar_composite("user-1", "main", ["bg1"], make_png())
        assert composites.get_avatar_composite("user-1")["cached"] is True

    def test_refused_upsert_keeps_previous_composite(self, composites, template):
        first = composites.upsert_avatar_composite("user-1", "main", ["bg1", "body1", "outfit3"], make_png())
        composites.cache_composed_scene("tavern", "user-1", make_png())

        with pytest.raises(ValidationError):
            composites.upsert_avatar_composite("user-1", "main", ["bg1", "body1", "outfit5"])

        served = composites.get_avatar_composite("user-1")
        assert served["cached"] is True
        assert served["avatar_hash"] == first["avatar_hash"] == avatar_hash(["bg1", "body1", "outfit3"])
        assert composites.compose_scene("tavern", "user-1")["avatar_hash"] == first["avatar_hash"]

    def test_composite_of_older_selection_is_not_served(self, composites, template):
        first = composites.upsert_avatar_composite("user-1", "main", ["bg1", "body1", "outfit3"], make_png())
        composites.upsert_avatar_composite("user-1", "thumb", ["bg1", "body1", "outfit5"], make_png())
        current = avatar_hash(["bg1", "body1", "outfit5"])

        served = composites.get_avatar_composite("user-1")
        assert served["cached"] is False
        assert served["avatar_hash"] == current != first["avatar_hash"]

        scene = composites.compose_scene("tavern", "user-1")
        assert scene["cached"] is False
        assert scene["avatar_url"] is None
        assert scene["avatar_hash"] == current
        with pytest.raises(DependencyError):
            composites.cache_composed_scene("tavern", "user-1", make_png())

    def test_selection_change_cascades_to_scenes(self, composites, template):
        """Changing the avatar drops every composed scene of that subject only"""
        composites.upsert_scene_template("market", "Market", "scenes/market_bg.webp", SLOT)
        first = composites.upsert_avatar_composite("user-1", "main", ["bg1", "body1", "outfit3"], make_png())
        composites.upsert_avatar_composite("user-2", "main", ["bg1"], make_png())
        composites.cache_composed_scene("tavern", "user-1", make_png())
        composites.cache_composed_scene("market", "user-1", make_png())
        composites.cache_composed_scene("tavern", "user-2", make_png())

        with pytest.raises(ValidationError):
            composites.upsert_avatar_composite("user-1", "main", ["bg1", "body1", "outfit5"])
        assert composites.scene_cache_size("user-1") == 2

        updated = composites.upsert_avatar_composite("user-1", "main", ["bg1", "body1", "outfit5"], make_png())
        assert updated["avatar_hash"] != first["avatar_hash"]
        assert updated["invalidated_scenes"] == 2
        assert composites.scene_cache_size("user-1") == 0
        assert composites.scene_cache_size("user-2") == 1


class TestSceneTemplates:
    """Tests for scene template upserts"""

    def test_upsert_and_get(self, composites, template):
        assert template["template_hash"] == template_hash("scenes/tavern_bg.webp", None)
        assert template["avatar_slot"]["rotation"] == 0
        assert composites.get_scene_template("tavern")["name"] == "Tavern"
        with pytest.raises(NotFoundError):
            composites.get_scene_template("nowhere")

    @pytest.mark.parametrize("slot", [
        {"x": 0, "y": 0, "width": 10},
        {"x": "0", "y": 0, "width": 10, "height": 10},
        {"x": 0, "y": 0, "width": 0, "height": 10},
        "not a slot",
    ])
    def test_invalid_slot(self, composites, slot):
        with pytest.raises(ValidationError):
            composites.upsert_scene_template("tavern", "Tavern", "bg.webp", slot)

    def test_layer_change_invalidates_template_rows(self, composites, template):
        composites.upsert_avatar_composite("user-1", "main", ["bg1"], make_png())
        composites.cache_composed_scene("tavern", "user-1", make_png())

        renamed = composites.upsert_scene_template("tavern", "Cosy Tavern", "scenes/tavern_bg.webp", SLOT)
        assert renamed["invalidated_scenes"] == 0
        assert composites.scene_cache_size() == 1

        changed = composites.upsert_scene_template(
            "tavern", "Cosy Tavern", "scenes/tavern_bg.webp", SLOT, foreground_key="scenes/tavern_fg.webp"
        )
        assert changed["invalidated_scenes"] == 1
        assert composites.scene_cache_size() == 0

    def test_list_active_only(self, composites, template):
        composites.upsert_scene_template("closed", "Closed Shop", "bg.webp", SLOT, is_active=False)
        assert len(composites.list_scene_templates()) == 2
        assert [t["id"] for t in composites.list_scene_templates(active_only=True)] == ["tavern"]


class TestComposeScene:
    """Tests for compose_scene / cache_composed_scene"""

    def test_miss_returns_raw_layers(self, composites, template):
        composites.upsert_avatar_composite("user-1", "main", ["bg1"], make_png())
        miss = composites.compose_scene("tavern", "user-1")
        assert miss["cached"] is False
        assert miss["background_url"] == "https://cdn.example.test/assets/scenes/tavern_bg.webp"
        assert miss["foreground_url"] is None
        assert miss["avatar_url"].endswith("composites/avatar_user-1_main.png")
        assert miss["avatar_slot"]["width"] == 300

    def test_miss_without_avatar_composite_lists_layers(self, composites, template):
        composites.register_avatar_layer("bg1", "background", "avatar/bg1.webp")
        composites.upsert_avatar_composite("user-1", "thumb", ["bg1"], make_png())
        miss = composites.compose_scene("tavern", "user-1")
        assert miss["avatar_url"] is None
        assert [layer["id"] for layer in miss["avatar_layers"]] == ["bg1"]

    def test_hit_after_cache(self, composites, template):
        composites.upsert_avatar_composite("user-1", "main", ["bg1"], make_png())
        stored = composites.cache_composed_scene("tavern", "user-1", make_png(), actor="renderer")
        assert stored["storage_key"] == "scenes/composed/tavern_user-1.png"

        hit = composites.compose_scene("tavern", "user-1")
        assert hit["cached"] is True
        assert hit["url"] == stored["url"]

    def test_inactive_template(self, composites):
        composites.upsert_scene_template("closed", "Closed", "bg.webp", SLOT, is_active=False)
        with pytest.raises(NotFoundError):
            composites.compose_scene("closed", "user-1")
        with pytest.raises(NotFoundError):
            composites.compose_scene("missing", "user-1")

    def test_cache_requires_avatar_composite(self, composites, template):
        with pytest.raises(DependencyError):
            composites.cache_composed_scene("tavern", "user-1", make_png())
        with pytest.raises(NotFoundError):
            composites.cache_composed_scene("missing", "user-1", make_png())

    def test_cache_writes_audit(self, composites, pipeline, template):
        composites.upsert_avatar_composite("user-1", "main", ["bg1"], make_png())
        composites.cache_composed_scene("tavern", "user-1", make_png(), actor="renderer")
        entry = pipeline.audit.recent(limit=1)[0]
        assert entry.action == "cache_composed_scene"
        assert entry.actor == "renderer"
