"""Tests for auction operator detection."""

from types import SimpleNamespace

import pytest

import admin_checks


def make_interaction(user_id, administrator=False, in_guild=True, owner_id=1):
    client = SimpleNamespace(
        _cached_app_info=SimpleNamespace(owner=SimpleNamespace(id=owner_id))
    )
    user = SimpleNamespace(
        id=user_id, guild_permissions=SimpleNamespace(administrator=administrator)
    )
    return SimpleNamespace(
        user=user, client=client, guild=object() if in_guild else None
    )


@pytest.fixture(autouse=True)
def bot_admins(monkeypatch):
    monkeypatch.setattr(admin_checks, "BOT_ADMINS", [42])


@pytest.mark.parametrize(
    "interaction,reason",
    [
        (make_interaction(1), "app owner"),
        (make_interaction(42), "BOT_ADMINS"),
        (make_interaction(7, administrator=True), "guild admin"),
        (make_interaction(7, administrator=True, in_guild=False), None),
        (make_interaction(7), None),
    ],
)
def test_admin_reason(run, interaction, reason):
    assert run(admin_checks.admin_reason(interaction)) == reason


def test_is_admin_or_owner(run):
    assert run(admin_checks.is_admin_or_owner(make_interaction(42)))
    assert not run(admin_checks.is_admin_or_owner(make_interaction(7)))
