"""Tests for configuration loading and the ingestion attempt lifecycle."""

import json

import pytest

from gearshelf.config import PLACEHOLDER_IMAGE, load_config
from gearshelf.errors import IllegalTransition
from gearshelf.models import IngestionAttempt, IngestionState


@pytest.fixture
def clean_env(monkeypatch):
    for name in ['AMAZON_ACCESS_KEY', 'AMAZON_SECRET_KEY', 'AMAZON_PARTNER_TAG',
                 'SUPABASE_URL', 'SUPABASE_KEY', 'GEMINI_API_KEY']:
        monkeypatch.delenv(name, raising=False)


def test_missing_file_uses_defaults(tmp_path, clean_env):
    config = load_config(str(tmp_path / 'missing.json'), env_file=str(tmp_path / '.env'))

    assert config.provider_priority == ['pa-api', 'og-metadata']
    assert config.placeholder_image == PLACEHOLDER_IMAGE
    assert config.provider_enabled('og-metadata')
    assert not config.has_supabase


def test_file_values_override_defaults(tmp_path, clean_env):
    path = tmp_path / 'pipeline.json'
    path.write_text(json.dumps({
        'provider_priority': ['og-metadata', 'pa-api'],
        'providers': {'pa-api': {'enabled': False}},
        'refresh_concurrency': 8,
        'amazon_secret_key': 'from-file',
        'unknown_key': True,
    }))

    config = load_config(str(path), env_file=str(tmp_path / '.env'))

    assert config.provider_priority == ['og-metadata', 'pa-api']
    assert not config.provider_enabled('pa-api')
    assert config.provider_enabled('og-metadata')
    assert config.refresh_concurrency == 8
    assert config.amazon_secret_key is None


def test_invalid_json_uses_defaults(tmp_path, clean_env):
    path = tmp_path / 'pipeline.json'
    path.write_text('{not json')

    config = load_config(str(path), env_file=str(tmp_path / '.env'))

    assert config.refresh_concurrency == 4


def test_secrets_come_from_environment(tmp_path, monkeypatch, clean_env):
    monkeypatch.setenv('AMAZON_ACCESS_KEY', 'AKID')
    monkeypatch.setenv('AMAZON_SECRET_KEY', 'secret')
    monkeypatch.setenv('AMAZON_PARTNER_TAG', 'gearshelf-22')
    monkeypatch.setenv('SUPABASE_URL', 'https://example.supabase.co')
    monkeypatch.setenv('SUPABASE_KEY', 'service-key')

    config = load_config(str(tmp_path / 'missing.json'), env_file=str(tmp_path / '.env'))

    assert config.has_pa_api_credentials
    assert config.has_supabase
    assert config.gemini_api_key is None


def test_attempt_happy_path():
    attempt = IngestionAttempt(actor_id='alice')
    for state in [IngestionState.RESOLVING, IngestionState.FETCHING_METADATA,
                  IngestionState.MATCHING, IngestionState.PREVIEW_READY,
                  IngestionState.COMMITTING, IngestionState.COMMITTED]:
        attempt.advance(state)

    assert attempt.state is IngestionState.COMMITTED
    assert attempt.history[0] is IngestionState.IDLE


def test_attempt_rejects_skipping_states():
    attempt = IngestionAttempt(actor_id='alice')
    attempt.advance(IngestionState.RESOLVING)

    with pytest.raises(IllegalTransition):
        attempt.advance(IngestionState.MATCHING)


def test_commit_may_start_from_idle():
    attempt = IngestionAttempt(actor_id='alice')
    attempt.advance(IngestionState.COMMITTING)
    assert attempt.state is IngestionState.COMMITTING


def test_abort_is_terminal():
    attempt = IngestionAttempt(actor_id='alice')
    attempt.advance(IngestionState.RESOLVING)
    attempt.abort(RuntimeError('boom'))

    assert attempt.state is IngestionState.ABORTED
    assert attempt.error == 'boom'
    with pytest.raises(IllegalTransition):
        attempt.advance(IngestionState.FETCHING_METADATA)

    attempt.abort(RuntimeError('again'))
    assert attempt.state is IngestionState.ABORTED
