from __future__ import annotations

from typing import List, Optional

import pytest

from achievements.cache import AchievementCache
from common.errors import CompanionApiError
from common.events import AchievementProgress, AchievementUnlocked
from state.models import AchievementEntry, Identity


@pytest.fixture
def achievements(authenticated, provider, host) -> AchievementCache:
    return AchievementCache(authenticated, provider, host)


def _events(cache: AchievementCache):
    unlocked: List[AchievementUnlocked] = []
    progress: List[AchievementProgress] = []
    cache.events.subscribe(AchievementUnlocked, unlocked.append)
    cache.events.subscribe(AchievementProgress, progress.append)
    return unlocked, progress


def test_unlock_unseen_id_creates_entry(achievements, provider, host):
    unlocked, _ = _events(achievements)
    results: List[bool] = []

    achievements.unlock("first_blood", results.append)
    host.run_pending()

    assert results == [True]
    assert achievements.is_unlocked("first_blood")
    entry = achievements.get("first_blood")
    assert entry is not None and entry.unlocked_at is not None
    assert unlocked == [AchievementUnlocked("first_blood")]
    assert ("unlock_achievement", "first_blood") in provider.calls


def test_unlock_failure_leaves_state_untouched(achievements, provider, host):
    unlocked, _ = _events(achievements)
    provider.fail["unlock_achievement"] = CompanionApiError("HTTP 404 from companion: unknown achievement")
    results: List[bool] = []

    achievements.unlock("nope", results.append)
    host.run_pending()

    assert results == [False]
    assert not achievements.is_unlocked("nope")
    assert achievements.get("nope") is None
    assert unlocked == []
    assert provider.count("unlock_achievement") == 1


def test_unlock_requires_authentication(make_lifecycle, provider, host):
    lc = make_lifecycle()
    cache = AchievementCache(lc, provider, host)
    results: List[bool] = []

    cache.unlock("a", results.append)

    assert results == [False]
    assert provider.count("unlock_achievement") == 0


@pytest.mark.parametrize("value", [1.0, 1.5])
def test_full_progress_is_an_unlock(achievements, provider, host, value):
    unlocked, progress = _events(achievements)
    results: List[bool] = []

    achievements.set_progress("marathon", value, results.append)
    host.run_pending()

    assert results == [True]
    assert achievements.is_unlocked("marathon")
    assert unlocked == [AchievementUnlocked("marathon")]
    assert progress == []
    assert achievements.get("marathon").progress is None


def test_partial_progress_is_local_only(achievements, provider, host):
    unlocked, progress = _events(achievements)
    calls_before = len(provider.calls)
    results: List[bool] = []

    achievements.set_progress("marathon", 0.4, results.append)
    achievements.set_progress("marathon", -2.0)
    host.run_pending()

    assert results == [True]
    assert progress == [AchievementProgress("marathon", 0.4), AchievementProgress("marathon", 0.0)]
    assert unlocked == []
    assert len(provider.calls) == calls_before
    assert not achievements.is_unlocked("marathon")


def test_set_progress_requires_initialized(make_lifecycle, provider, host):
    cache = AchievementCache(make_lifecycle(), provider, host)
    results: List[bool] = []
    cache.set_progress("a", 0.5, results.append)
    assert results == [False]


def test_get_all_replaces_cache(achievements, provider, host):
    provider.achievements = [
        AchievementEntry(id="a", name="A", unlocked=True, unlockedAt="2025-01-01T10:00:00Z"),
        AchievementEntry(id="b", name="B"),
    ]
    achievements.clear_cache()
    results: List[Optional[List[AchievementEntry]]] = []

    achievements.get_all(results.append)
    host.run_pending()

    assert [e.id for e in results[0]] == ["a", "b"]
    assert achievements.is_unlocked("a")
    assert not achievements.is_unlocked("b")
    assert not achievements.is_unlocked("never-heard-of")

    provider.achievements = [AchievementEntry(id="b", name="B", unlocked=True)]
    achievements.get_all(results.append)
    host.run_pending()

    assert achievements.get("a") is None
    assert achievements.is_unlocked("b")


def test_get_all_failure_delivers_none(achievements, provider, host):
    provider.fail["list_achievements"] = CompanionApiError("Failed to parse JSON from companion")
    results: List[object] = []

    achievements.get_all(results.append)
    host.run_pending()

    assert results == [None]


def test_confirmed_unlock_survives_stale_list(achievements, provider, host):
    achievements.unlock("a")
    host.run_pending()
    provider.achievements = [AchievementEntry(id="a", name="A", unlocked=False)]

    achievements.get_all(lambda _items: None)
    host.run_pending()

    assert achievements.is_unlocked("a")
    assert achievements.get("a").name == "A"


def test_confirmed_unlock_survives_list_without_it(achievements, provider, host):
    achievements.unlock("secret")
    host.run_pending()
    unlocked_at = achievements.get("secret").unlocked_at
    provider.achievements = [AchievementEntry(id="other", name="Other")]
    results: List[Optional[List[AchievementEntry]]] = []

    achievements.get_all(results.append)
    host.run_pending()

    assert achievements.is_unlocked("secret")
    assert achievements.get("secret").unlocked_at == unlocked_at
    assert sorted(e.id for e in results[0]) == ["other", "secret"]
    assert not achievements.is_unlocked("other")


def test_clear_cache(achievements, host):
    achievements.unlock("a")
    host.run_pending()
    achievements.clear_cache()
    assert not achievements.is_unlocked("a")


def test_results_after_shutdown_are_dropped(achievements, authenticated, host):
    results: List[bool] = []
    achievements.unlock("a", results.append)
    authenticated.shutdown()
    host.run_pending()

    assert results == []
    assert not achievements.is_unlocked("a")
    assert authenticated.init(Identity.for_app(480)) is False
