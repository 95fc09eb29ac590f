"""
Shared pytest fixtures for test suite.

This module provides common fixtures used across multiple test files,
reducing duplication and ensuring consistency.
"""

import random
from datetime import date

import pytest

from storykeep.api import create_app
from storykeep.models import Settings, normalize_story


@pytest.fixture
def sample_analysis():
    """Analysis record as returned by the site analysis collaborator."""
    return {
        "storyId": "12345",
        "title": "My Story",
        "author": "Jane Doe",
        "fandom": "Harry Potter",
        "summary": "A short tale about a long winter.",
        "status": "Complete",
        "rating": "General Audiences",
        "language": "en",
        "chapters": "3/3",
        "wordCount": "12,345",
        "publishedAt": "2021-04-05T00:00:00",
        "url": "https://archiveofourown.org/works/12345",
        "kudos": 42,
    }


@pytest.fixture
def sample_story(sample_analysis):
    """Normalized three-chapter story with every optional label set."""
    return normalize_story(sample_analysis)


@pytest.fixture
def minimal_story():
    """Story with only the required fields."""
    return normalize_story({"id": "s1", "title": "My Story", "author": "Jane Doe"})


@pytest.fixture
def today():
    """Fixed date for filename templates using {date}."""
    return date(2024, 3, 9)


@pytest.fixture
def seeded_rng():
    """Deterministic random source for cover decorations."""
    return random.Random(1234)


@pytest.fixture
def app():
    """Create Flask application for testing with empty settings."""
    config = {
        'TESTING': True,
        'SETTINGS': Settings(),
        'RATELIMIT_STORAGE_URI': 'memory://',
    }
    return create_app(config=config)


@pytest.fixture
def client(app):
    """Create a test client for the Flask app."""
    with app.test_client() as test_client:
        yield test_client


@pytest.fixture
def story_payload(sample_analysis):
    """JSON payload describing a story, as posted to the API."""
    return dict(sample_analysis)
