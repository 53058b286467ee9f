"""
Shared fixtures for Policy Mail tests.
"""

import copy

import pytest

from policy_mail.api.email_workflow.config import EmailWorkflowConfig
from policy_mail.api.email_workflow.record_store import InMemoryRecordStore
from policy_mail.api.email_workflow.workflow_manager import build_workflow_manager

ADS_POLICY = {
    "category_id": "ads_policy",
    "name": "Ads Policy",
    "subcategories": [
        {"category_id": "misleading_claims", "name": "Misleading Claims"},
        {"category_id": "restricted_content", "name": "Restricted Content"},
    ],
}

RECORDS = {
    "templates": [
        {
            "template_id": "misreview-claims",
            "workflow_type": "misreview",
            "category": "ads_policy",
            "subcategory": "misleading_claims",
            "content": (
                "Hello {{customer_name}},\n\n"
                "Your review for account {{ecid}} was {{upper(status)}}.\n"
                "{{#if agent_name}}Reviewed by {{agent_name}}.{{/if}}\n"
                "{{notes}}"
            ),
            "required_variables": ["customer_name", "ecid"],
            "optional_variables": ["agent_name", "notes"],
        },
        {
            "template_id": "disapproval-claims-old",
            "workflow_type": "disapproval",
            "category": "ads_policy",
            "subcategory": "misleading_claims",
            "content": "Retired template",
            "active": False,
        },
        {
            "template_id": "disapproval-claims",
            "workflow_type": "disapproval",
            "category": "ads_policy",
            "subcategory": "misleading_claims",
            "content": "Your ad was disapproved ({{status}}).",
            "required_variables": ["customer_email"],
        },
        {
            "template_id": "certification-trademark",
            "workflow_type": "certification",
            "category": "trademark",
            "content": "Your {{category}} certification was {{status}}.",
        },
    ],
    "variables": [
        {"name": "customer_name", "display_name": "Customer Name", "type": "text"},
        {"name": "ecid", "display_name": "ECID", "type": "text"},
        {"name": "agent_name", "display_name": "Agent Name", "type": "text"},
        {"name": "customer_email", "display_name": "Customer Email", "type": "email"},
        {
            "name": "notes",
            "display_name": "Notes",
            "type": "text",
            "default_value": "No additional notes.",
        },
    ],
    "options": {
        "channel": [
            {"value": "email", "label": "Email"},
            {"value": "chat", "label": "Live Chat"},
        ],
    },
    "policy_categories": {
        "misreview": [ADS_POLICY],
        "disapproval": [ADS_POLICY],
        "certification": [{"category_id": "trademark", "name": "Trademark"}],
    },
}


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    """Configuration isolated from any local .env file."""
    return EmailWorkflowConfig(_env_file=None, state_db_path=None, records_path=None)


@pytest.fixture
def records():
    return copy.deepcopy(RECORDS)


@pytest.fixture
def record_store(records):
    return InMemoryRecordStore.from_dict(records)


@pytest.fixture
def manager(config, record_store):
    return build_workflow_manager(config, record_store)
