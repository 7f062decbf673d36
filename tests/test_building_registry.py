"""Tests for building configuration drafts and publishing

Run with pytest from project root:
    pytest tests/test_building_registry.py -v
"""

import json

import pytest

from errors import DependencyError, NotFoundError, ValidationError
from managers.building_registry import load_building_types


@pytest.fixture
def restaurant_sprite(pipeline, approved):
    ref = approved("building_ref", "restaurant")
    sprite = pipeline.controller.generate_from_ref(ref.id, "restaurant sprite")
    return pipeline.controller.approve(sprite.id, actor="reviewer")


class TestBuildingRegistry:
    """Tests for BuildingRegistry"""

    def test_defaults_without_config(self, pipeline):
        view = pipeline.buildings.get_config("restaurant")
        assert view["active_sprite_id"] is None
        assert view["is_published"] is False
        assert view["effective_cost"] == view["default_cost"] == 40000
        assert view["effective_profit"] == 4000

    def test_update_with_sprite_and_overrides(self, pipeline, restaurant_sprite):
        view = pipeline.buildings.update_config(
            "restaurant", active_sprite_id=restaurant_sprite.id, cost_override=35000, actor="designer"
        )
        assert view["active_sprite_id"] == restaurant_sprite.id
        assert view["effective_cost"] == 35000
        assert view["effective_profit"] == 4000
        assert pipeline.buildings.effective_cost("restaurant") == 35000

    def test_omitted_sprite_keeps_current(self, pipeline, restaurant_sprite):
        pipeline.buildings.update_config("restaurant", active_sprite_id=restaurant_sprite.id, cost_override=1)
        view = pipeline.buildings.update_config("restaurant", profit_override=10)
        assert view["active_sprite_id"] == restaurant_sprite.id
        assert view["cost_override"] is None
        assert view["effective_profit"] == 10

    def test_sprite_must_match_key_and_category(self, pipeline, approved, restaurant_sprite):
        with pytest.raises(ValidationError):
            pipeline.buildings.update_config("casino", active_sprite_id=restaurant_sprite.id)
        ref = pipeline.registry.get(restaurant_sprite.parent_asset_id)
        with pytest.raises(ValidationError):
            pipeline.buildings.update_config("restaurant", active_sprite_id=ref.id)
        with pytest.raises(ValidationError):
            pipeline.buildings.update_config("restaurant", active_sprite_id=999)

    def test_sprite_must_be_approved(self, pipeline, approved):
        ref = approved("building_ref", "restaurant")
        sprite = pipeline.controller.generate_from_ref(ref.id, "restaurant sprite")
        with pytest.raises(ValidationError):
            pipeline.buildings.update_config("restaurant", active_sprite_id=sprite.id)

    @pytest.mark.parametrize("override", [-1, 1.5, True, "100"])
    def test_invalid_override(self, pipeline, override):
        with pytest.raises(ValidationError):
            pipeline.buildings.update_config("restaurant", cost_override=override)

    def test_unknown_building_type(self, pipeline):
        with pytest.raises(NotFoundError):
            pipeline.buildings.update_config("spaceport")

    def test_publish_requires_sprite(self, pipeline):
        pipeline.buildings.update_config("restaurant", cost_override=100)
        with pytest.raises(DependencyError):
            pipeline.buildings.publish("restaurant")
        with pytest.raises(DependencyError):
            pipeline.buildings.publish("casino")

    def test_publish_unpublish_keeps_draft(self, pipeline, restaurant_sprite):
        pipeline.buildings.update_config("restaurant", active_sprite_id=restaurant_sprite.id, cost_override=500)
        published = pipeline.buildings.publish("restaurant", actor="designer")
        assert published["is_published"] is True
        assert published["published_by"] == "designer"
        assert [b["building_type_id"] for b in pipeline.buildings.list_buildings(published_only=True)] == ["restaurant"]

        draft = pipeline.buildings.unpublish("restaurant")
        assert draft["is_published"] is False
        assert draft["active_sprite_id"] == restaurant_sprite.id
        assert draft["cost_override"] == 500
        assert pipeline.buildings.list_buildings(published_only=True) == []

    def test_publish_rechecks_regenerated_sprite(self, pipeline, restaurant_sprite):
        pipeline.buildings.update_config("restaurant", active_sprite_id=restaurant_sprite.id)
        pipeline.controller.generate_from_ref(restaurant_sprite.parent_asset_id, "new restaurant sprite")

        with pytest.raises(DependencyError) as exc_info:
            pipeline.buildings.publish("restaurant")
        assert exc_info.value.details["building_type_id"] == "restaurant"
        assert exc_info.value.details["status"] == "awaiting_review"
        assert pipeline.buildings.get_config("restaurant")["is_published"] is False

        pipeline.controller.approve(restaurant_sprite.id)
        assert pipeline.buildings.publish("restaurant")["is_published"] is True

    def test_unpublish_without_config(self, pipeline):
        with pytest.raises(NotFoundError):
            pipeline.buildings.unpublish("restaurant")

    def test_sprite_url_follows_publish(self, pipeline, restaurant_sprite):
        pipeline.buildings.update_config("restaurant", active_sprite_id=restaurant_sprite.id)
        assert pipeline.buildings.get_config("restaurant")["sprite_url"] is None
        pipeline.publisher.publish(restaurant_sprite.id)
        url = pipeline.buildings.get_config("restaurant")["sprite_url"]
        assert url.endswith("sprites/building_sprite/restaurant_v1.webp")

    def test_list_buildings_counts_sprites(self, pipeline, restaurant_sprite):
        buildings = {b["building_type_id"]: b for b in pipeline.buildings.list_buildings()}
        assert len(buildings) == 10
        assert buildings["restaurant"]["available_sprites"] == 1
        assert buildings["casino"]["available_sprites"] == 0


class TestLoadBuildingTypes:
    """Tests for load_building_types"""

    def test_load(self, tmp_path):
        path = tmp_path / "types.json"
        path.write_text(json.dumps([{"id": "kiosk", "default_cost": "50", "default_profit": 5}]))
        types = load_building_types(path)
        assert types[0].name == "kiosk"
        assert types[0].default_cost == 50

    def test_invalid_file(self, tmp_path):
        path = tmp_path / "types.json"
        path.write_text(json.dumps({"id": "kiosk"}))
        with pytest.raises(ValidationError):
            load_building_types(path)
        with pytest.raises(ValidationError):
            load_building_types(tmp_path / "missing.json")
