import tempfile

import pytest

from linkforge.db.connection import run_migrations
from linkforge.repositories.submission_repository import SubmissionRepository
from linkforge.repositories.tutorial_repository import TutorialRepository
from linkforge.schemas.tutorial import Classification, GeneratedTutorialData


def make_classification(**overrides) -> Classification:
    data = {
        "maturity_level": 2,
        "level_relation": "level-practice",
        "topics": ["prompt chaining", "automation", "agents"],
        "tags": ["workflow"],
        "tools_mentioned": ["Claude"],
        "difficulty": "intermediate",
    }
    data.update(overrides)
    return Classification(**data)


def make_generated(**overrides) -> GeneratedTutorialData:
    data = {
        "title": "Chaining Prompts Into Workflows",
        "slug": "chaining-prompts-into-workflows",
        "summary": "How to connect prompts into a repeatable workflow.",
        "body": "## Step one\n\nWrite the first prompt. Then feed its answer into the next one.",
        "action_items": ["Pick a workflow", "Write the first prompt"],
        "classification": make_classification(),
    }
    data.update(overrides)
    return GeneratedTutorialData(**data)


@pytest.fixture
def db_path():
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = f.name
    run_migrations(path)
    return path


@pytest.fixture
def submissions(db_path):
    return SubmissionRepository(db_path)


@pytest.fixture
def tutorials(db_path):
    return TutorialRepository(db_path)


@pytest.fixture(name="make_classification")
def make_classification_fixture():
    return make_classification


@pytest.fixture(name="make_generated")
def make_generated_fixture():
    return make_generated
