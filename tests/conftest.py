from __future__ import annotations

import json

import pytest

from ea_studio.modeling.registry import (
    CATALOG_DIR,
    COMPONENT_TYPES_FILE,
    EDGE_TYPES_FILE,
    GROUP_TYPES_FILE,
    TEMPLATES_FILE,
    build_registry,
    load_registries,
    reset_registry_cache,
)
from ea_studio.store.store import DiagramStore


@pytest.fixture
def registry():
    reset_registry_cache()
    state = load_registries()
    assert state.ready, state.message
    return state


@pytest.fixture
def store(registry):
    return DiagramStore(registry=registry)


@pytest.fixture
def asymmetric_registry():
    """Category lists Sub-Capability as a child, but Sub-Capability only accepts a Capability parent."""
    docs = [
        json.loads((CATALOG_DIR / name).read_text(encoding="utf-8"))
        for name in (COMPONENT_TYPES_FILE, GROUP_TYPES_FILE, EDGE_TYPES_FILE, TEMPLATES_FILE)
    ]
    for group in docs[1]["groupTypes"]:
        if group["groupTypeId"] == "ea.catDept":
            group["allowedChildGroupTypes"].append("ea.subCapability")
    state = build_registry(*docs)
    assert state.ready, state.message
    return state
