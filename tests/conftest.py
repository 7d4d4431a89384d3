"""Shared fixtures: in-memory backends and sample records"""

import copy
import os
from datetime import datetime, timezone
import pytest

# Tests never talk to Redis
os.environ["STATE_BACKEND"] = "memory"
os.environ["NOTIFICATION_BACKEND"] = "memory"

from claimdesk.constants import ItemCategory, ProofType
from claimdesk.models.item import Item, LostReport
from claimdesk.orchestrator.engine import ClaimDeskEngine
from claimdesk.utils.config_loader import load_config


@pytest.fixture
def config():
    return load_config()


@pytest.fixture
def make_engine(config):
    """Engines must be built inside the event loop that uses them"""
    def _make(**overrides):
        engine_config = copy.deepcopy(config)
        for section, values in overrides.items():
            engine_config[section].update(values)
        return ClaimDeskEngine(config=engine_config)
    return _make


@pytest.fixture
def make_item():
    def _make(**overrides):
        fields = {
            "category": ItemCategory.ELECTRONICS,
            "description": "Black iPhone found near gate 4",
            "keywords": ["iphone", "black", "128gb"],
            "location_found": "Terminal 1",
            "date_found": datetime(2024, 1, 1, tzinfo=timezone.utc),
        }
        fields.update(overrides)
        return Item(**fields)
    return _make


@pytest.fixture
def make_report():
    def _make(**overrides):
        fields = {
            "category": ItemCategory.ELECTRONICS,
            "description": "Lost my black iPhone",
            "keywords": ["iphone", "black"],
            "location_lost": "Terminal 1",
            "date_lost": datetime(2024, 1, 1, tzinfo=timezone.utc),
            "reported_by": "owner_1",
            "contact_email": "owner@example.com",
        }
        fields.update(overrides)
        return LostReport(**fields)
    return _make


@pytest.fixture
def proof_document():
    return {"type": ProofType.INVOICE, "filename": "receipt.pdf", "path": "uploads/receipt.pdf"}
