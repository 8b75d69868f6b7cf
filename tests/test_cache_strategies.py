"""
Tests for cache strategies and key derivation.
"""
import hashlib

import pytest

from app.cache import CacheStrategy, CacheTier, STRATEGY_CONFIG, build_key
from app.cache.strategies import canonical_json, merge_vary_params


class TestStrategyConfig:
    """Default TTL and tier per strategy."""

    def test_every_strategy_is_configured(self):
        for strategy in CacheStrategy:
            assert strategy in STRATEGY_CONFIG
            assert strategy.ttl > 0
            assert isinstance(strategy.tier, CacheTier)

    def test_defaults(self):
        assert (CacheStrategy.USER.ttl, CacheStrategy.USER.tier) == (300, CacheTier.MEMORY)
        assert (CacheStrategy.RESTAURANT.ttl, CacheStrategy.RESTAURANT.tier) == (1800, CacheTier.APPLICATION)
        assert (CacheStrategy.MENU.ttl, CacheStrategy.MENU.tier) == (1800, CacheTier.APPLICATION)
        assert (CacheStrategy.PUBLIC.ttl, CacheStrategy.PUBLIC.tier) == (3600, CacheTier.APPLICATION)
        assert (CacheStrategy.STATIC.ttl, CacheStrategy.STATIC.tier) == (7200, CacheTier.LONG_TERM)
        assert (CacheStrategy.API.ttl, CacheStrategy.API.tier) == (600, CacheTier.APPLICATION)
        assert (CacheStrategy.SEARCH.ttl, CacheStrategy.SEARCH.tier) == (900, CacheTier.APPLICATION)


class TestScopedKeys:
    """prefix:part[:part...] keys."""

    def test_user_key_with_and_without_suffix(self):
        assert build_key(CacheStrategy.USER, ["42"]) == "user:42"
        assert build_key(CacheStrategy.USER, ["42", "session"]) == "user:42:session"

    def test_single_value_params(self):
        assert build_key(CacheStrategy.MENU, "m1") == "menu:m1"
        assert build_key(CacheStrategy.RESTAURANT, 7) == "restaurant:7"

    def test_empty_parts_are_dropped(self):
        assert build_key(CacheStrategy.RESTAURANT, ["r1", ""]) == "restaurant:r1"
        assert build_key(CacheStrategy.PUBLIC, ["restaurants", "", "featured"]) == "public:restaurants:featured"

    def test_menu_item_prefix(self):
        assert build_key(CacheStrategy.MENU_ITEM, ["i9"]) == "menuitem:i9"

    def test_static_key(self):
        assert build_key(CacheStrategy.STATIC, ["img1"]) == "static:img1"
        assert build_key(CacheStrategy.STATIC, ["qr", "m1", "png"]) == "static:qr:m1:png"

    def test_mapping_part_is_hashed(self):
        key = build_key(CacheStrategy.STATIC, ["image", "abc", {"w": 100}])
        expected = hashlib.md5(canonical_json({"w": 100}).encode()).hexdigest()
        assert key == f"static:image:abc:{expected}"

    def test_strategy_key_method(self):
        assert CacheStrategy.USER.key("1", "prefs") == "user:1:prefs"

    def test_missing_params_rejected(self):
        with pytest.raises(ValueError):
            build_key(CacheStrategy.USER, [])


class TestHashedKeys:
    """API and SEARCH keys hash their composite parameters."""

    def test_api_without_params(self):
        assert build_key(CacheStrategy.API, ["/menus"]) == "api:/menus"
        assert build_key(CacheStrategy.API, ["/menus", {}]) == "api:/menus"

    def test_api_params_hash_is_order_independent(self):
        a = build_key(CacheStrategy.API, ["/menus", {"page": 1, "limit": 10}])
        b = build_key(CacheStrategy.API, ["/menus", {"limit": 10, "page": 1}])
        assert a == b
        assert a.startswith("api:/menus:")
        assert len(a.split(":")[-1]) == 32

    def test_api_accepts_request_mapping(self):
        direct = build_key(CacheStrategy.API, ["/a", {"q": 1}])
        packed = build_key(CacheStrategy.API, [{"endpoint": "/a", "params": {"q": 1}}])
        assert direct == packed

    def test_api_different_params_differ(self):
        a = build_key(CacheStrategy.API, ["/a", {"q": 1}])
        b = build_key(CacheStrategy.API, ["/a", {"q": 2}])
        assert a != b

    def test_search_key_is_bounded(self):
        key = build_key(CacheStrategy.SEARCH, ["pizza " * 200, {"city": "Lisbon"}])
        assert key.startswith("search:")
        assert len(key) == len("search:") + 32

    def test_search_filters_change_key(self):
        a = build_key(CacheStrategy.SEARCH, ["pizza", {"city": "Lisbon"}])
        b = build_key(CacheStrategy.SEARCH, ["pizza", {"city": "Porto"}])
        c = build_key(CacheStrategy.SEARCH, ["pizza"])
        assert len({a, b, c}) == 3

    def test_key_derivation_is_pure(self):
        params = ["/a", {"q": [1, 2], "sort": "name"}]
        assert build_key(CacheStrategy.API, params) == build_key(CacheStrategy.API, params)


class TestVaryParams:
    """Folding request vary-by values into key params."""

    def test_no_vary_leaves_params(self):
        assert merge_vary_params(CacheStrategy.USER, ["1"], {}) == ("1",)

    def test_api_merges_into_params_mapping(self):
        params = merge_vary_params(CacheStrategy.API, ["/a", {"q": 1}], {"lang": "pt"})
        assert params == ("/a", {"q": 1, "lang": "pt"})

    def test_scoped_strategy_appends_mapping(self):
        params = merge_vary_params(CacheStrategy.PUBLIC, ["menus", "m1"], {"lang": "pt"})
        assert params == ("menus", "m1", {"lang": "pt"})
        assert build_key(CacheStrategy.PUBLIC, params) != build_key(CacheStrategy.PUBLIC, ["menus", "m1"])
