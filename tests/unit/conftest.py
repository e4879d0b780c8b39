"""Unit test conftest: manifest, tree and property payloads shaped like APS responses."""

from __future__ import annotations

from typing import Any

import pytest

from cad_metadata.aps import auth as aps_auth


@pytest.fixture(autouse=True)
def _clear_token_cache():
    aps_auth.clear_cache()
    yield
    aps_auth.clear_cache()


@pytest.fixture
def sample_derivatives() -> list[dict[str, Any]]:
    """Two derivatives; view guid G1 sits two levels deep in the first one."""
    return [
        {
            "name": "floor-plan.dwg",
            "hasThumbnail": "true",
            "status": "success",
            "progress": "complete",
            "outputType": "svf",
            "children": [
                {
                    "guid": "geo-1",
                    "type": "geometry",
                    "role": "2d",
                    "name": "Model",
                    "viewableID": "vid-model",
                    "hasThumbnail": "true",
                    "status": "success",
                    "progress": "complete",
                    "children": [
                        {
                            "guid": "G1",
                            "type": "resource",
                            "role": "graphics",
                            "mime": "application/autodesk-f2d",
                            "urn": "urn:adsk.viewing:fs.file:abc/output/Model/primaryGraphics.f2d",
                            "viewableID": "vid-model",
                        },
                        {
                            "guid": "thumb-1",
                            "type": "resource",
                            "role": "thumbnail",
                            "mime": "image/png",
                            "urn": "urn:adsk.viewing:fs.file:abc/output/Model/thumb.png",
                        },
                    ],
                },
                {
                    "guid": "geo-2",
                    "type": "geometry",
                    "role": "2d",
                    "name": "Layout1",
                    "viewableID": "vid-layout1",
                    "hasThumbnail": False,
                },
            ],
        },
        {
            "name": "floor-plan.dwg",
            "status": "success",
            "progress": "complete",
            "outputType": "thumbnail",
            "hasThumbnail": "false",
        },
    ]


@pytest.fixture
def sample_tree() -> dict[str, Any]:
    """Root with two children, one of which has a single grandchild."""
    return {
        "type": "objects",
        "objects": [
            {
                "objectid": 1,
                "name": "Model",
                "objects": [
                    {"objectid": 2, "name": "Layer 0", "objects": [{"objectid": 4, "name": "Line [1A]"}]},
                    {"objectid": 3, "name": "Dimensions"},
                ],
            }
        ],
    }


@pytest.fixture
def sample_properties() -> dict[str, Any]:
    return {
        "type": "properties",
        "collection": [
            {
                "objectid": 2,
                "name": "Door A",
                "properties": {
                    "Dimensions": {"Width": "900 mm", "Height": "2100 mm"},
                    "Material": {"Name": "Oak"},
                },
            },
            {
                "objectid": 3,
                "name": "Door B",
                "properties": {"Dimensions": {"Width": "800 mm"}},
            },
        ],
    }
